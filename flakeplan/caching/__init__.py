"""
Binary cache trust management for flakeplan.

Modules:
    trust: Validate substituters and their public keys into a TrustRegistry
"""

from .trust import (
    TrustDescriptor,
    TrustRegistry,
    pair_nix_config,
    register,
)

__all__ = [
    "TrustDescriptor",
    "TrustRegistry",
    "pair_nix_config",
    "register",
]
