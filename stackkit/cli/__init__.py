"""
StackKit CLI module.

This module provides the command-line interface for StackKit.
"""

from .parser import CLI, main

__all__ = ["CLI", "main"]
