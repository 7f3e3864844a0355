"""
Entry point for running StackKit CLI as a module.

Usage: python -m stackkit supply <build_dir> <cache_dir> <deps_dir> <deps_idx>
"""

from stackkit.cli.parser import main

if __name__ == "__main__":
    main()
