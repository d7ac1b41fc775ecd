"""
Shared utilities for CLI commands.

Provides common functionality used across multiple CLI commands to
eliminate duplication and ensure consistent behavior.
"""

import logging
from pathlib import Path

from flakeplan.config.parser import Declaration, load_file

logger = logging.getLogger(__name__)


def load_declaration(args) -> Declaration:
    """
    Load the declaration named by ``--config``.

    Args:
        args: Parsed arguments with a ``config`` path

    Returns:
        Validated Declaration

    Raises:
        ConfigError: If the file is missing or invalid
    """
    config_path = Path(args.config)
    logger.debug(f"Using declaration: {config_path.resolve()}")
    return load_file(config_path)
