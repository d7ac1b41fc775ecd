"""
Cross-compilation support for flakeplan.

This module provides the fixed target registry and the target matrix
resolver.
"""

from flakeplan.cross.targets import (
    DEFAULT_TARGETS,
    TargetDescriptor,
    find_target,
    resolve,
)

__all__ = [
    "DEFAULT_TARGETS",
    "TargetDescriptor",
    "find_target",
    "resolve",
]
