"""
Core utilities for flakeplan.

This package contains the exception hierarchy, the source filter, the
fingerprinter and output-file locking.
"""

from flakeplan.core.exceptions import (
    ConfigError,
    CyclicPackageError,
    FlakePlanError,
    IncompleteTrustEntryError,
    OverlayError,
    SourceTreeError,
    TrustError,
    UnknownTargetError,
    UnresolvedPackageError,
)
from flakeplan.core.filesystem import FilteredTree, TreeEntry, filter_tree
from flakeplan.core.verification import SourceFingerprint, fingerprint

__all__ = [
    "ConfigError",
    "CyclicPackageError",
    "FilteredTree",
    "FlakePlanError",
    "IncompleteTrustEntryError",
    "OverlayError",
    "SourceFingerprint",
    "SourceTreeError",
    "TreeEntry",
    "TrustError",
    "UnknownTargetError",
    "UnresolvedPackageError",
    "filter_tree",
    "fingerprint",
]
