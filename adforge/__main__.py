"""
Entry point for running adforge as a module.

Usage:
    python -m adforge [command] [args]

This is equivalent to the ``adforge`` console script.
"""

from adforge.cli.main import main

if __name__ == "__main__":
    raise SystemExit(main())
