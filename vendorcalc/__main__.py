"""
Main entry point for running vendorcalc as a module.

Usage:
    python -m vendorcalc [options] COMMAND
"""
import sys

from .cli import main

if __name__ == "__main__":
    sys.exit(main())
