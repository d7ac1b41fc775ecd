"""
Entry point for running the flakeplan CLI as a module.

Usage: python -m flakeplan [command] [options]
"""

from flakeplan.cli.parser import main

if __name__ == "__main__":
    main()
