"""
flakeplan CLI argument parser.

This module implements the command-line interface for flakeplan using argparse.
The CLI is a presentation layer: it loads a declaration, calls the compiler
and renders results or errors.
"""

import argparse
import importlib
import logging
import sys
from pathlib import Path
from typing import List, Optional

from flakeplan.config.parser import DEFAULT_CONFIG_NAME
from flakeplan.core.exceptions import FlakePlanError

# Get version from package
try:
    from importlib.metadata import PackageNotFoundError, version

    __version__ = version("flakeplan")
except PackageNotFoundError:
    __version__ = "0.1.0"

logger = logging.getLogger(__name__)


class CLI:
    """flakeplan command-line interface."""

    def __init__(self):
        """Initialize CLI with argument parser."""
        self.parser = self._create_parser()

    def _create_parser(self) -> argparse.ArgumentParser:
        """
        Create argument parser with all subcommands.

        Returns:
            Configured ArgumentParser instance
        """
        parser = argparse.ArgumentParser(
            prog="flakeplan",
            description="flakeplan - compile build declarations into build plans",
            epilog='Use "flakeplan COMMAND --help" for command-specific help',
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )

        # Global options
        parser.add_argument(
            "--version", action="version", version=f"flakeplan {__version__}"
        )
        parser.add_argument(
            "--verbose", "-v", action="store_true", help="Enable verbose output"
        )
        parser.add_argument(
            "--quiet",
            "-q",
            action="store_true",
            help="Enable minimal output (errors only)",
        )
        parser.add_argument(
            "--config",
            type=Path,
            metavar="PATH",
            default=Path(DEFAULT_CONFIG_NAME),
            help="Path to declaration file (default: ./flakeplan.yaml)",
        )

        subparsers = parser.add_subparsers(
            dest="command", help="Available commands", metavar="COMMAND"
        )

        self._add_plan_command(subparsers)
        self._add_check_command(subparsers)
        self._add_fingerprint_command(subparsers)
        self._add_targets_command(subparsers)
        self._add_shell_command(subparsers)

        return parser

    def _add_plan_command(self, subparsers):
        """Add 'plan' subcommand."""
        parser = subparsers.add_parser(
            "plan",
            help="Compile the declaration into a build plan",
            description="Compile the declaration and emit the build plan as JSON",
        )
        parser.add_argument(
            "--output",
            "-o",
            type=Path,
            metavar="FILE",
            help="Write the plan to FILE instead of stdout",
        )
        parser.add_argument(
            "--lock-timeout",
            type=float,
            default=30.0,
            metavar="SECONDS",
            help="Maximum wait for the output file lock (default: 30)",
        )

    def _add_check_command(self, subparsers):
        """Add 'check' subcommand."""
        subparsers.add_parser(
            "check",
            help="Validate the declaration",
            description="Parse the declaration and report semantic issues",
        )

    def _add_fingerprint_command(self, subparsers):
        """Add 'fingerprint' subcommand."""
        parser = subparsers.add_parser(
            "fingerprint",
            help="Print the source fingerprint",
            description="Filter the source tree and print its content fingerprint",
        )
        parser.add_argument(
            "--list",
            action="store_true",
            help="Also list the files that contribute to the fingerprint",
        )

    def _add_targets_command(self, subparsers):
        """Add 'targets' subcommand."""
        parser = subparsers.add_parser(
            "targets",
            help="Show the resolved target matrix",
            description="Show which targets the declaration builds",
        )
        parser.add_argument(
            "--all",
            action="store_true",
            help="Show every registered target with its state",
        )

    def _add_shell_command(self, subparsers):
        """Add 'shell' subcommand."""
        subparsers.add_parser(
            "shell",
            help="Show development shell tools",
            description="Show the tools the composed development shell provides",
        )

    def parse_args(self, args: Optional[List[str]] = None):
        """
        Parse command-line arguments.

        Args:
            args: Arguments to parse (uses sys.argv if None)

        Returns:
            Parsed arguments namespace
        """
        return self.parser.parse_args(args)

    def run(self, args: Optional[List[str]] = None) -> int:
        """
        Run CLI with given arguments.

        Args:
            args: Arguments to parse (uses sys.argv if None)

        Returns:
            Exit code (0 for success, non-zero for error)
        """
        parsed_args = self.parse_args(args)

        self._configure_logging(parsed_args)

        if not parsed_args.command:
            self.parser.print_help()
            return 1

        try:
            return self._dispatch_command(parsed_args)
        except KeyboardInterrupt:
            logger.info("Operation cancelled by user")
            return 130  # Standard exit code for SIGINT
        except FlakePlanError as e:
            logger.error(f"Error: {e}")
            return 1
        except Exception as e:
            logger.error(f"Error: {e}")
            if parsed_args.verbose:
                import traceback

                traceback.print_exc()
            return 1

    def _configure_logging(self, args):
        """
        Configure logging based on verbose/quiet flags.

        Args:
            args: Parsed arguments with verbose/quiet flags
        """
        if args.verbose:
            level = logging.DEBUG
            format_str = "%(levelname)s [%(name)s] %(message)s"
        elif args.quiet:
            level = logging.ERROR
            format_str = "%(levelname)s: %(message)s"
        else:
            level = logging.INFO
            format_str = "%(message)s"

        logging.basicConfig(
            level=level,
            format=format_str,
            force=True,  # Reconfigure if already configured
        )

    def _dispatch_command(self, args) -> int:
        """
        Dispatch to appropriate command handler.

        Args:
            args: Parsed arguments with command field

        Returns:
            Exit code from command handler
        """
        command_map = {
            "plan": "flakeplan.cli.commands.plan",
            "check": "flakeplan.cli.commands.check",
            "fingerprint": "flakeplan.cli.commands.fingerprint",
            "targets": "flakeplan.cli.commands.targets",
            "shell": "flakeplan.cli.commands.shell",
        }

        module_name = command_map.get(args.command)
        if not module_name:
            logger.error(f"Unknown command: {args.command}")
            return 1

        module = importlib.import_module(module_name)
        return module.run(args)


def main():
    """Main entry point for CLI."""
    cli = CLI()
    sys.exit(cli.run())


if __name__ == "__main__":
    main()
