"""
Package sets and overlay composition for flakeplan.

Modules:
    base: Package definitions, immutable package sets, the base set
    overlays: Left-to-right overlay folding with lazy forward references
"""

from flakeplan.packages.base import PackageDefinition, PackageSet, default_package_set
from flakeplan.packages.overlays import (
    Lazy,
    Overlay,
    PackageView,
    compose,
    lazy,
    overlay_from_spec,
)

__all__ = [
    "Lazy",
    "Overlay",
    "PackageDefinition",
    "PackageSet",
    "PackageView",
    "compose",
    "default_package_set",
    "lazy",
    "overlay_from_spec",
]
