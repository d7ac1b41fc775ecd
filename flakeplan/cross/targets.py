"""
Target matrix for cross-compilation.

This module defines the fixed registry of known platform targets and the
resolver that narrows it with per-declaration enable/disable overrides.

The registry is an explicit immutable table passed into ``resolve``; nothing
in this module keeps global mutable state.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Mapping, Optional, Tuple

from flakeplan.core.exceptions import UnknownTargetError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TargetDescriptor:
    """
    Platform target specification.

    Attributes:
        triple: Target triple (e.g., 'aarch64-unknown-linux-musl')
        default_enabled: Whether the target is built without an override
        toolchain: Name of the package providing the toolchain for this target
    """

    triple: str
    default_enabled: bool = True
    toolchain: Optional[str] = None

    def __post_init__(self):
        if not self.triple or self.triple.count("-") < 1:
            raise ValueError(f"Invalid target triple: {self.triple!r}")
        if self.toolchain is None:
            object.__setattr__(self, "toolchain", toolchain_package_name(self.triple))

    @property
    def arch(self) -> str:
        """CPU architecture component of the triple."""
        return self.triple.split("-", 1)[0]

    @property
    def is_wasm(self) -> bool:
        return self.arch.startswith("wasm")


def toolchain_package_name(triple: str) -> str:
    """Package name of the standard library/toolchain for a triple."""
    return f"rust-std-{triple}"


DEFAULT_TARGETS: Tuple[TargetDescriptor, ...] = (
    TargetDescriptor("aarch64-apple-darwin"),
    TargetDescriptor("aarch64-linux-android"),
    TargetDescriptor("aarch64-unknown-linux-gnu"),
    TargetDescriptor("aarch64-unknown-linux-musl"),
    TargetDescriptor("arm-unknown-linux-gnueabihf"),
    TargetDescriptor("arm-unknown-linux-musleabihf"),
    TargetDescriptor("armv7-unknown-linux-gnueabihf"),
    TargetDescriptor("armv7-unknown-linux-musleabihf"),
    TargetDescriptor("powerpc64le-unknown-linux-gnu"),
    TargetDescriptor("riscv64gc-unknown-linux-gnu", default_enabled=False),
    TargetDescriptor("s390x-unknown-linux-gnu"),
    TargetDescriptor("wasm32-unknown-unknown"),
    TargetDescriptor("wasm32-wasip1"),
    TargetDescriptor("wasm32-wasip2"),
    TargetDescriptor("x86_64-apple-darwin"),
    TargetDescriptor("x86_64-pc-windows-gnu"),
    TargetDescriptor("x86_64-unknown-freebsd", default_enabled=False),
    TargetDescriptor("x86_64-unknown-linux-gnu"),
    TargetDescriptor("x86_64-unknown-linux-musl"),
)
"""Known targets in fixed declaration order."""


def find_target(
    registry: Iterable[TargetDescriptor], triple: str
) -> Optional[TargetDescriptor]:
    """Look up a target by triple, returning None if it is not registered."""
    for target in registry:
        if target.triple == triple:
            return target
    return None


def check_overrides(
    registry: Iterable[TargetDescriptor], overrides: Mapping[str, bool]
) -> None:
    """
    Ensure every override key names a registered target.

    Raises:
        UnknownTargetError: For the first unknown key (in sorted order)
    """
    known = {target.triple for target in registry}
    for triple in sorted(overrides):
        if triple not in known:
            raise UnknownTargetError(triple)


def resolve(
    registry: Iterable[TargetDescriptor], overrides: Mapping[str, bool]
) -> Tuple[TargetDescriptor, ...]:
    """
    Resolve the set of targets to build.

    Starts from the default-enabled targets and applies overrides exactly:
    ``False`` disables a target, ``True`` enables it, absence keeps the
    default. The result follows registry order, never override order.

    Args:
        registry: Known targets in declaration order
        overrides: Mapping of target triple to enabled flag

    Returns:
        Tuple of enabled targets in registry order

    Raises:
        UnknownTargetError: If an override names an unregistered target

    Example:
        >>> resolve(DEFAULT_TARGETS, {"wasm32-wasip2": False})
        (TargetDescriptor(triple='aarch64-apple-darwin', ...), ...)
    """
    registry = tuple(registry)
    check_overrides(registry, overrides)

    enabled = tuple(
        target
        for target in registry
        if overrides.get(target.triple, target.default_enabled)
    )
    logger.debug(
        f"Resolved {len(enabled)} of {len(registry)} targets "
        f"({len(overrides)} override(s))"
    )
    return enabled


__all__ = [
    "DEFAULT_TARGETS",
    "TargetDescriptor",
    "check_overrides",
    "find_target",
    "resolve",
    "toolchain_package_name",
]
