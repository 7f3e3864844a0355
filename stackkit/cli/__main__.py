"""
Entry point for running StackKit CLI as a module.

Usage: python -m stackkit.cli [command] [options]
"""

from .parser import main

if __name__ == "__main__":
    main()
