"""
Entry point for running the flakeplan CLI as a module.

Usage: python -m flakeplan.cli [command] [options]
"""

from .parser import main

if __name__ == "__main__":
    main()
