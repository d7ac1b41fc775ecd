"""
Centralized exception hierarchy for flakeplan.

Every compilation stage either returns a valid immutable value or raises one
of the exceptions below. Nothing is retried; callers receive the exception
unchanged and are responsible for presenting it.
"""

from typing import Optional


# ============================================================================
# Base Exceptions
# ============================================================================


class FlakePlanError(Exception):
    """Base exception for all flakeplan errors."""

    pass


# ============================================================================
# Declaration Exceptions
# ============================================================================


class ConfigError(FlakePlanError):
    """Malformed or invalid declaration.

    Attributes:
        field: Dotted path of the offending declaration field, if known
    """

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        if field:
            message = f"{field}: {message}"
        super().__init__(message)


class UnknownTargetError(ConfigError):
    """Raised when a target override references an unregistered target."""

    def __init__(self, target: str, field: Optional[str] = None):
        self.target = target
        super().__init__(
            f"Unknown target '{target}' (not in the target registry)",
            field=field or f"targets.{target}",
        )


# ============================================================================
# Source Tree Exceptions
# ============================================================================


class SourceTreeError(FlakePlanError):
    """Raised when the source tree cannot be traversed or read."""

    pass


# ============================================================================
# Overlay Exceptions
# ============================================================================


class OverlayError(FlakePlanError):
    """Base exception for package-set composition errors."""

    pass


class UnresolvedPackageError(OverlayError):
    """Raised when a package is required but never defined."""

    def __init__(self, package: str, referrer: Optional[str] = None):
        self.package = package
        self.referrer = referrer
        msg = f"Package '{package}' is not defined in the package set"
        if referrer:
            msg += f" (required by {referrer})"
        super().__init__(msg)


class CyclicPackageError(OverlayError):
    """Raised when a package value depends on itself."""

    def __init__(self, package: str):
        self.package = package
        super().__init__(f"Infinite recursion while evaluating package '{package}'")


# ============================================================================
# Trust Exceptions
# ============================================================================


class TrustError(FlakePlanError):
    """Base exception for substituter trust configuration errors."""

    pass


class IncompleteTrustEntryError(TrustError):
    """Raised when a trust entry lacks a substituter URL or a public key."""

    def __init__(self, cache: str, missing: str):
        self.cache = cache
        self.missing = missing
        super().__init__(f"Trust entry '{cache}' is missing its {missing}")


__all__ = [
    "FlakePlanError",
    "ConfigError",
    "UnknownTargetError",
    "SourceTreeError",
    "OverlayError",
    "UnresolvedPackageError",
    "CyclicPackageError",
    "TrustError",
    "IncompleteTrustEntryError",
]
