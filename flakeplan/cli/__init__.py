"""
flakeplan command-line interface.

This package provides the CLI entry point and command implementations.
"""

from flakeplan.cli.parser import CLI, main

__all__ = ["CLI", "main"]
