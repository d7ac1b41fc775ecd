"""Declaration module for flakeplan.

This module provides YAML declaration parsing and semantic validation for
flakeplan.yaml.
"""

from flakeplan.config.parser import (
    DEFAULT_CONFIG_NAME,
    Declaration,
    load,
    load_file,
)
from flakeplan.config.validation import (
    ConfigValidator,
    ValidationIssue,
    ValidationResult,
    format_validation_results,
)

__all__ = [
    "DEFAULT_CONFIG_NAME",
    "Declaration",
    "load",
    "load_file",
    "ConfigValidator",
    "ValidationIssue",
    "ValidationResult",
    "format_validation_results",
]
