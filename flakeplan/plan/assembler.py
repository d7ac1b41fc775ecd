"""
Build plan assembly.

Combines resolved targets, the source fingerprint, the composed package set
and the declaration's policy into a BuildPlan. A single source snapshot backs
every target, so all units carry the same fingerprint and their cache keys can
be compared across targets for one commit.
"""

import logging
from typing import Iterable, Optional

from flakeplan.caching.trust import TrustRegistry
from flakeplan.core.verification import SourceFingerprint
from flakeplan.cross.targets import TargetDescriptor
from flakeplan.packages.base import PackageSet
from flakeplan.plan.devshell import DevShellSpec
from flakeplan.plan.model import BuildPlan, BuildUnit, Policy

logger = logging.getLogger(__name__)


def assemble(
    targets: Iterable[TargetDescriptor],
    fingerprint: SourceFingerprint,
    package_set: PackageSet,
    policy: Policy,
    *,
    devshell: Optional[DevShellSpec] = None,
    trust: Optional[TrustRegistry] = None,
) -> BuildPlan:
    """
    Produce one BuildUnit per target.

    Args:
        targets: Resolved targets, in the order units should appear
        fingerprint: Fingerprint shared by every unit
        package_set: Composed package set providing the toolchains
        policy: Policy applied to every unit
        devshell: Development shell to carry in the plan
        trust: Trusted substituters to carry in the plan

    Returns:
        Immutable BuildPlan

    Raises:
        UnresolvedPackageError: If a target's toolchain is not in the package set
    """
    units = []
    for target in targets:
        toolchain = package_set.require(target.toolchain, referrer=target.triple)
        units.append(
            BuildUnit(
                target=target.triple,
                fingerprint=fingerprint,
                toolchain=target.toolchain,
                toolchain_package=toolchain,
                policy=policy,
            )
        )

    plan = BuildPlan(
        units=tuple(units),
        fingerprint=fingerprint,
        devshell=devshell if devshell is not None else DevShellSpec(),
        trust=trust if trust is not None else TrustRegistry(),
    )
    logger.info(f"Assembled build plan: {len(units)} unit(s) at {fingerprint}")
    return plan


__all__ = ["assemble"]
