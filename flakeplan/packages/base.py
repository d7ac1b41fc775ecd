"""
Package definitions and package sets.

A package set maps package names to values. The built-in base set uses
``PackageDefinition`` values, but overlays may bind any value (nested
package sets, plain strings, numbers).
"""

import dataclasses
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, Optional, Tuple

from packaging.version import InvalidVersion, Version

from flakeplan.core.exceptions import UnresolvedPackageError
from flakeplan.cross.targets import DEFAULT_TARGETS, TargetDescriptor

logger = logging.getLogger(__name__)

RUST_VERSION = "1.82.0"


@dataclass(frozen=True)
class PackageDefinition:
    """A single package in a package set."""

    name: str
    version: str
    outputs: Tuple[str, ...] = ("out",)
    attrs: Dict[str, Any] = field(default_factory=dict, hash=False)

    def __post_init__(self):
        if not self.name:
            raise ValueError("Package name cannot be empty")
        try:
            Version(str(self.version))
        except InvalidVersion as e:
            raise ValueError(
                f"Invalid version for package {self.name}: {self.version}"
            ) from e
        object.__setattr__(self, "version", str(self.version))
        object.__setattr__(self, "outputs", tuple(self.outputs))

    @property
    def parsed_version(self) -> Version:
        return Version(self.version)

    def override(self, **changes: Any) -> "PackageDefinition":
        """
        Return a copy with fields replaced.

        Unknown keys are merged into ``attrs`` rather than rejected, so an
        overlay can tweak arbitrary attributes.
        """
        known = {f.name for f in dataclasses.fields(self)}
        direct = {k: v for k, v in changes.items() if k in known and k != "attrs"}
        extra = {k: v for k, v in changes.items() if k not in known}
        attrs = dict(self.attrs)
        attrs.update(changes.get("attrs", {}))
        attrs.update(extra)
        return dataclasses.replace(self, attrs=attrs, **direct)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "outputs": list(self.outputs),
            "attrs": dict(sorted(self.attrs.items())),
        }


class PackageSet(Mapping):
    """
    Immutable mapping of package name to package value.

    Example:
        >>> pkgs = PackageSet({"cargo": PackageDefinition("cargo", "1.82.0")})
        >>> pkgs.require("cargo").version
        '1.82.0'
    """

    def __init__(self, packages: Optional[Mapping[str, Any]] = None):
        self._packages: Dict[str, Any] = dict(packages or {})

    def __getitem__(self, name: str) -> Any:
        return self._packages[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._packages)

    def __len__(self) -> int:
        return len(self._packages)

    def __repr__(self) -> str:
        return f"PackageSet({sorted(self._packages)!r})"

    def require(self, name: str, referrer: Optional[str] = None) -> Any:
        """
        Get a package, failing loudly if it is absent.

        Raises:
            UnresolvedPackageError: If the package is not defined
        """
        try:
            return self._packages[name]
        except KeyError:
            raise UnresolvedPackageError(name, referrer) from None

    def lookup(self, reference: str, referrer: Optional[str] = None) -> Any:
        """
        Resolve a dotted reference such as ``pkgsUnstable.nats-server``.

        Each segment is looked up in the value produced by the previous one;
        intermediate values must be mappings.

        Raises:
            UnresolvedPackageError: If any segment is missing
        """
        segments = reference.split(".")
        value: Any = self
        for depth, segment in enumerate(segments):
            if not isinstance(value, Mapping) or segment not in value:
                missing = ".".join(segments[: depth + 1])
                raise UnresolvedPackageError(missing, referrer)
            value = value[segment]
        return value

    def names(self) -> Tuple[str, ...]:
        return tuple(sorted(self._packages))


def default_package_set(targets: Iterable[TargetDescriptor] = DEFAULT_TARGETS) -> PackageSet:
    """
    Build the base package set.

    Contains the host rust toolchain components, common development tools
    and one standard-library package per registered target.
    """
    packages: Dict[str, Any] = {}

    for name, version in (
        ("rustc", RUST_VERSION),
        ("cargo", RUST_VERSION),
        ("clippy", RUST_VERSION),
        ("rustfmt", RUST_VERSION),
        ("rust-analyzer", "2024.10.28"),
        ("cargo-audit", "0.20.1"),
        ("cargo-nextest", "0.9.81"),
        ("nats-server", "2.10.18"),
        ("natscli", "0.1.4"),
    ):
        packages[name] = PackageDefinition(name=name, version=version, outputs=("out", "bin"))

    for target in targets:
        packages[target.toolchain] = PackageDefinition(
            name=target.toolchain,
            version=RUST_VERSION,
            attrs={"target": target.triple},
        )

    logger.debug(f"Base package set has {len(packages)} packages")
    return PackageSet(packages)


__all__ = [
    "PackageDefinition",
    "PackageSet",
    "RUST_VERSION",
    "default_package_set",
]
