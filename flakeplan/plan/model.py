"""
Build plan data model.

A BuildPlan is created once per compilation and never mutated. It is the
only thing handed to the external build executor.
"""

import hashlib
import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Tuple

from flakeplan.caching.trust import TrustRegistry
from flakeplan.core.verification import SourceFingerprint
from flakeplan.packages.base import PackageDefinition
from flakeplan.plan.devshell import DevShellSpec


class TestScope(str, Enum):
    """Which crates the test phase covers."""

    __test__ = False

    PACKAGE = "package"
    WORKSPACE = "workspace"


@dataclass(frozen=True)
class Policy:
    """
    Lint and test policy, applied uniformly to every build unit.

    Attributes:
        lint_strict: Lint warnings fail the build
        lint_deny: Lint groups denied (e.g. ``("warnings",)``)
        lint_workspace: Lint the whole workspace rather than one package
        test_scope: Package or workspace tests
        test_all_targets: Test every target kind (lib, bins, examples, benches)
        do_check: Run tests inside the build derivation itself
    """

    lint_strict: bool = False
    lint_deny: Tuple[str, ...] = ()
    lint_workspace: bool = False
    test_scope: TestScope = TestScope.PACKAGE
    test_all_targets: bool = False
    do_check: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "lint_strict": self.lint_strict,
            "lint_deny": list(self.lint_deny),
            "lint_workspace": self.lint_workspace,
            "test_scope": self.test_scope.value,
            "test_all_targets": self.test_all_targets,
            "do_check": self.do_check,
        }


@dataclass(frozen=True)
class BuildUnit:
    """One derivation to build: a target over the shared source snapshot."""

    target: str
    fingerprint: SourceFingerprint
    toolchain: str
    toolchain_package: Any = field(default=None, hash=False)
    policy: Policy = field(default_factory=Policy)

    @property
    def cache_key(self) -> str:
        """Key under which the unit's artifacts are cached."""
        payload = {
            "target": self.target,
            "fingerprint": str(self.fingerprint),
            "toolchain": self.toolchain,
            "toolchain_package": to_jsonable(self.toolchain_package),
            "policy": self.policy.to_dict(),
        }
        canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "target": self.target,
            "fingerprint": str(self.fingerprint),
            "toolchain": self.toolchain,
            "toolchain_package": to_jsonable(self.toolchain_package),
            "policy": self.policy.to_dict(),
            "cache_key": self.cache_key,
        }


@dataclass(frozen=True)
class BuildPlan:
    """
    Fully resolved output of a compilation.

    Attributes:
        units: One BuildUnit per enabled target, in registry order
        fingerprint: Source fingerprint shared by every unit
        devshell: Development shell specification
        trust: Snapshot of trusted substituters
    """

    units: Tuple[BuildUnit, ...]
    fingerprint: SourceFingerprint
    devshell: DevShellSpec = field(default_factory=DevShellSpec)
    trust: TrustRegistry = field(default_factory=TrustRegistry, hash=False)

    @property
    def targets(self) -> Tuple[str, ...]:
        return tuple(unit.target for unit in self.units)

    def unit_for(self, target: str) -> BuildUnit:
        for unit in self.units:
            if unit.target == target:
                return unit
        raise KeyError(target)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fingerprint": str(self.fingerprint),
            "file_count": self.fingerprint.file_count,
            "units": [unit.to_dict() for unit in self.units],
            "devshell": self.devshell.to_dict(),
            "trust": self.trust.to_dict(),
            "nix_config": self.trust.to_nix_config(),
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, sort_keys=True)


def to_jsonable(value: Any) -> Any:
    """Convert a package value into plain JSON data."""
    if isinstance(value, PackageDefinition):
        return value.to_dict()
    if isinstance(value, Mapping):
        return {str(k): to_jsonable(v) for k, v in sorted(value.items(), key=lambda kv: str(kv[0]))}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    return repr(value)


__all__ = ["BuildPlan", "BuildUnit", "Policy", "TestScope", "to_jsonable"]
