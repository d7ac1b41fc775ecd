"""
Tests for build plan assembly and the plan model.
"""

import json

import pytest

from flakeplan.caching.trust import register
from flakeplan.core.exceptions import UnresolvedPackageError
from flakeplan.core.verification import SourceFingerprint
from flakeplan.cross.targets import TargetDescriptor
from flakeplan.packages.base import PackageDefinition, PackageSet, default_package_set
from flakeplan.plan.assembler import assemble
from flakeplan.plan.devshell import DevShellSpec
from flakeplan.plan.model import BuildUnit, Policy, TestScope
from tests.fixtures.workspaces import CRANE_KEY

FINGERPRINT = SourceFingerprint("sha256", "ab" * 32, file_count=3)
TARGETS = (TargetDescriptor("aarch64-unknown-linux-gnu"), TargetDescriptor("x86_64-unknown-linux-gnu"))


@pytest.mark.unit
class TestAssemble:
    """Test assembling units from resolved targets."""

    def test_one_unit_per_target_sharing_fingerprint(self):
        """Test that every unit carries the same fingerprint."""
        plan = assemble(TARGETS, FINGERPRINT, default_package_set(TARGETS), Policy())

        assert plan.targets == ("aarch64-unknown-linux-gnu", "x86_64-unknown-linux-gnu")
        assert {unit.fingerprint for unit in plan.units} == {FINGERPRINT}
        assert plan.fingerprint == FINGERPRINT

    def test_units_follow_target_order(self):
        """Test that unit order matches the given target order."""
        plan = assemble(tuple(reversed(TARGETS)), FINGERPRINT, default_package_set(TARGETS), Policy())

        assert plan.targets == ("x86_64-unknown-linux-gnu", "aarch64-unknown-linux-gnu")

    def test_no_targets_gives_empty_plan(self):
        """Test that an empty target set is a valid, empty plan."""
        plan = assemble((), FINGERPRINT, PackageSet(), Policy())

        assert plan.units == ()
        assert plan.to_dict()["units"] == []

    def test_policy_applied_uniformly(self):
        """Test that every unit carries the same policy."""
        policy = Policy(lint_strict=True, lint_deny=("warnings",), test_scope=TestScope.WORKSPACE)

        plan = assemble(TARGETS, FINGERPRINT, default_package_set(TARGETS), policy)

        assert all(unit.policy is policy for unit in plan.units)

    def test_toolchain_comes_from_package_set(self):
        """Test that an overridden toolchain package is used."""
        packages = dict(default_package_set(TARGETS))
        packages["rust-std-x86_64-unknown-linux-gnu"] = PackageDefinition(
            "rust-std-x86_64-unknown-linux-gnu", "1.83.0"
        )

        plan = assemble(TARGETS, FINGERPRINT, PackageSet(packages), Policy())

        assert plan.unit_for("x86_64-unknown-linux-gnu").toolchain_package.version == "1.83.0"

    def test_missing_toolchain(self):
        """Test that a target without its toolchain package fails."""
        with pytest.raises(UnresolvedPackageError) as exc_info:
            assemble(TARGETS, FINGERPRINT, PackageSet(), Policy())

        assert exc_info.value.package == "rust-std-aarch64-unknown-linux-gnu"
        assert exc_info.value.referrer == "aarch64-unknown-linux-gnu"

    def test_unit_for_unknown_target(self):
        """Test that asking for a missing unit raises KeyError."""
        plan = assemble(TARGETS, FINGERPRINT, default_package_set(TARGETS), Policy())

        with pytest.raises(KeyError):
            plan.unit_for("wasm32-wasip1")


@pytest.mark.unit
class TestCacheKey:
    """Test per-unit cache keys."""

    def make_unit(self, **changes):
        fields = {
            "target": "x86_64-unknown-linux-gnu",
            "fingerprint": FINGERPRINT,
            "toolchain": "rust-std-x86_64-unknown-linux-gnu",
            "toolchain_package": PackageDefinition("rust-std-x86_64-unknown-linux-gnu", "1.82.0"),
            "policy": Policy(),
        }
        fields.update(changes)
        return BuildUnit(**fields)

    def test_stable(self):
        """Test that equal units have equal keys."""
        assert self.make_unit().cache_key == self.make_unit().cache_key
        assert len(self.make_unit().cache_key) == 64

    @pytest.mark.parametrize(
        "changes",
        [
            {"target": "aarch64-unknown-linux-gnu"},
            {"fingerprint": SourceFingerprint("sha256", "cd" * 32)},
            {"policy": Policy(do_check=False)},
            {"toolchain_package": PackageDefinition("rust-std-x86_64-unknown-linux-gnu", "1.83.0")},
        ],
    )
    def test_inputs_change_key(self, changes):
        """Test that every build input participates in the key."""
        assert self.make_unit(**changes).cache_key != self.make_unit().cache_key


@pytest.mark.unit
class TestPlanSerialization:
    """Test plan rendering."""

    def test_to_json(self):
        """Test the JSON document handed to executors."""
        trust = register({"crane": {"url": "https://crane.cachix.org", "public_key": CRANE_KEY}})
        plan = assemble(
            TARGETS[:1],
            FINGERPRINT,
            default_package_set(TARGETS),
            Policy(),
            devshell=DevShellSpec(frozenset({"rustc", "cargo"})),
            trust=trust,
        )

        data = json.loads(plan.to_json())

        assert data["fingerprint"] == str(FINGERPRINT)
        assert data["file_count"] == 3
        assert data["devshell"] == {"tools": ["cargo", "rustc"]}
        assert data["nix_config"]["extra-substituters"] == ["https://crane.cachix.org"]
        unit = data["units"][0]
        assert unit["target"] == "aarch64-unknown-linux-gnu"
        assert unit["policy"]["test_scope"] == "package"
        assert unit["cache_key"] == plan.units[0].cache_key
        assert unit["toolchain_package"]["attrs"] == {"target": "aarch64-unknown-linux-gnu"}

    def test_json_is_deterministic(self):
        """Test that equal plans serialize identically."""
        first = assemble(TARGETS, FINGERPRINT, default_package_set(TARGETS), Policy())
        second = assemble(TARGETS, FINGERPRINT, default_package_set(TARGETS), Policy())

        assert first == second
        assert first.to_json() == second.to_json()
