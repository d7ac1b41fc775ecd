"""
Build plan model and assembly for flakeplan.

Modules:
    model: BuildUnit, BuildPlan and Policy
    assembler: One unit per resolved target over a shared fingerprint
    devshell: Development shell composition
"""

from flakeplan.plan.assembler import assemble
from flakeplan.plan.devshell import (
    DEFAULT_SHELL_TOOLS,
    DevShellSpec,
    compose_shell,
    resolve_tools,
)
from flakeplan.plan.model import BuildPlan, BuildUnit, Policy, TestScope

__all__ = [
    "BuildPlan",
    "BuildUnit",
    "DEFAULT_SHELL_TOOLS",
    "DevShellSpec",
    "Policy",
    "TestScope",
    "assemble",
    "compose_shell",
    "resolve_tools",
]
