"""Development shell composition."""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, List

logger = logging.getLogger(__name__)

DEFAULT_SHELL_TOOLS = ("cargo", "clippy", "rust-analyzer", "rustc", "rustfmt")


@dataclass(frozen=True)
class DevShellSpec:
    """Set of tool references the development shell provides."""

    tools: FrozenSet[str] = field(default_factory=frozenset)

    def __contains__(self, tool: object) -> bool:
        return tool in self.tools

    def __len__(self) -> int:
        return len(self.tools)

    def sorted_tools(self) -> List[str]:
        return sorted(self.tools)

    def to_dict(self) -> Dict[str, Any]:
        return {"tools": self.sorted_tools()}


def compose_shell(base_tools: Iterable[str], extra_tools: Iterable[str]) -> DevShellSpec:
    """Union of base and extension tools, duplicates collapsed."""
    base = frozenset(base_tools)
    extra = frozenset(extra_tools)
    spec = DevShellSpec(tools=base | extra)
    logger.debug(
        f"Dev shell: {len(base)} base + {len(extra - base)} extra tool(s)"
    )
    return spec


def resolve_tools(spec: DevShellSpec, package_set) -> Dict[str, Any]:
    """
    Resolve every tool reference against a package set.

    Dotted references (``pkgsUnstable.nats-server``) descend into nested
    package sets.

    Raises:
        UnresolvedPackageError: If a tool is not provided by the package set
    """
    return {
        tool: package_set.lookup(tool, referrer="devShell")
        for tool in spec.sorted_tools()
    }


__all__ = ["DEFAULT_SHELL_TOOLS", "DevShellSpec", "compose_shell", "resolve_tools"]
