"""
Check command implementation.

Validates the declaration and prints semantic issues.
"""

import logging

from flakeplan.cli.utils import load_declaration
from flakeplan.config.validation import ConfigValidator, format_validation_results

logger = logging.getLogger(__name__)


def run(args) -> int:
    """
    Run the check command.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 if valid, 1 if errors were found)
    """
    declaration = load_declaration(args)
    result = ConfigValidator().validate(declaration)

    print(format_validation_results(result))
    return 0 if result.valid else 1
