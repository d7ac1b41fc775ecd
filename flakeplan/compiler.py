"""
Declaration-to-build-plan compiler.

Runs every stage in data-flow order:

    Declaration -> filter_tree -> fingerprint
                -> compose (overlays over the base package set)
                -> resolve (target matrix)
                -> compose_shell + resolve_tools
                -> assemble

Each stage is a pure function over immutable inputs, so independent
declarations can be compiled concurrently without coordination. A failing
stage raises and no plan is produced.
"""

import logging
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional, Union

from flakeplan.config.parser import Declaration, load_file
from flakeplan.core.filesystem import filter_tree
from flakeplan.core.verification import fingerprint
from flakeplan.cross.targets import DEFAULT_TARGETS, TargetDescriptor, resolve
from flakeplan.packages.base import default_package_set
from flakeplan.packages.overlays import compose
from flakeplan.plan.assembler import assemble
from flakeplan.plan.devshell import DEFAULT_SHELL_TOOLS, compose_shell, resolve_tools
from flakeplan.plan.model import BuildPlan

logger = logging.getLogger(__name__)


def compile_declaration(
    declaration: Declaration,
    *,
    registry: Iterable[TargetDescriptor] = DEFAULT_TARGETS,
    base: Optional[Mapping[str, Any]] = None,
    base_tools: Iterable[str] = DEFAULT_SHELL_TOOLS,
) -> BuildPlan:
    """
    Compile a declaration into a build plan.

    Args:
        declaration: Validated declaration
        registry: Known targets (fixed table)
        base: Base package set (default: built-in set for ``registry``)
        base_tools: Tools every development shell provides

    Returns:
        Immutable BuildPlan

    Raises:
        FlakePlanError: Any stage failure, propagated unchanged
    """
    registry = tuple(registry)
    logger.info(f"Compiling declaration for {declaration.root}")

    tree = filter_tree(declaration.root, declaration.exclude)
    source = fingerprint(tree)
    logger.info(f"Source fingerprint: {source} ({source.file_count} entries)")

    if base is None:
        base = default_package_set(registry)
    packages = compose(base, declaration.overlays)

    targets = resolve(registry, declaration.targets)
    logger.info(f"Targets: {', '.join(t.triple for t in targets) or '(none)'}")

    shell = compose_shell(base_tools, declaration.shell_tools)
    resolve_tools(shell, packages)

    return assemble(
        targets,
        source,
        packages,
        declaration.policy,
        devshell=shell,
        trust=declaration.caches,
    )


def compile_file(
    config_path: Union[str, Path],
    *,
    registry: Iterable[TargetDescriptor] = DEFAULT_TARGETS,
) -> BuildPlan:
    """Load a flakeplan.yaml declaration and compile it."""
    registry = tuple(registry)
    return compile_declaration(load_file(config_path, registry=registry), registry=registry)


__all__ = ["compile_declaration", "compile_file"]
