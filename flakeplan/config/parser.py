"""YAML declaration parser for flakeplan.

This module turns a raw declaration (a mapping, usually loaded from
flakeplan.yaml) into an immutable, validated Declaration.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union
import logging

import yaml

from flakeplan.caching.trust import TrustRegistry, pair_nix_config, register
from flakeplan.core.exceptions import ConfigError, OverlayError
from flakeplan.core.filesystem import normalize_pattern
from flakeplan.cross.targets import DEFAULT_TARGETS, TargetDescriptor, check_overrides
from flakeplan.packages.overlays import Overlay, as_overlay, overlay_from_spec
from flakeplan.plan.model import Policy, TestScope

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_NAME = "flakeplan.yaml"

# Canonical key -> accepted spellings (the second is the flake attribute name)
KEY_ALIASES = {
    "root": ("root", "src"),
    "exclude": ("exclude", "excludePaths"),
}
KNOWN_KEYS = {
    "version",
    "root",
    "src",
    "exclude",
    "excludePaths",
    "overlays",
    "targets",
    "clippy",
    "test",
    "doCheck",
    "caches",
    "nixConfig",
    "devShell",
}


@dataclass(frozen=True)
class Declaration:
    """Complete, validated build declaration."""

    root: Path
    exclude: Tuple[str, ...] = ()
    overlays: Tuple[Overlay, ...] = ()
    targets: Mapping = field(default_factory=lambda: MappingProxyType({}), hash=False)
    policy: Policy = field(default_factory=Policy)
    caches: TrustRegistry = field(default_factory=TrustRegistry, hash=False)
    shell_tools: Tuple[str, ...] = ()


def load_file(
    config_path: Union[str, Path], registry: Iterable[TargetDescriptor] = DEFAULT_TARGETS
) -> Declaration:
    """
    Parse a flakeplan.yaml declaration file.

    Args:
        config_path: Path to flakeplan.yaml
        registry: Known targets

    Returns:
        Parsed and validated declaration

    Raises:
        ConfigError: If the declaration is invalid
        TrustError: If a cache entry is invalid
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise ConfigError(f"Declaration file not found: {config_path}")

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML syntax: {e}")

    if data is None:
        raise ConfigError("Declaration file is empty")

    logger.debug(f"Loaded declaration from {config_path}")
    return load(data, base_dir=config_path.parent, registry=registry)


def load(
    raw: Any,
    *,
    base_dir: Optional[Union[str, Path]] = None,
    registry: Iterable[TargetDescriptor] = DEFAULT_TARGETS,
) -> Declaration:
    """
    Validate a raw declaration mapping.

    Args:
        raw: Declaration data
        base_dir: Directory a relative root is resolved against (default: cwd)
        registry: Known targets, used to validate target overrides

    Returns:
        Immutable Declaration

    Raises:
        ConfigError: If the declaration is malformed (names the field)
        UnknownTargetError: If a target override names an unknown target
        TrustError: If a cache entry is invalid
    """
    if not isinstance(raw, Mapping):
        raise ConfigError(f"Declaration must be a mapping, got {type(raw).__name__}")

    unknown = sorted(str(k) for k in raw if k not in KNOWN_KEYS)
    if unknown:
        raise ConfigError(f"Unknown declaration key(s): {', '.join(unknown)}")

    # A null value means the key is absent, at every level
    raw = {k: v for k, v in raw.items() if v is not None}

    version = raw.get("version", 1)
    if version != 1:
        raise ConfigError(f"Unsupported version: {version} (expected 1)", field="version")

    declaration = Declaration(
        root=_parse_root(_aliased(raw, "root", "."), base_dir),
        exclude=_parse_exclude(_aliased(raw, "exclude", [])),
        overlays=_parse_overlays(raw.get("overlays", [])),
        targets=MappingProxyType(_parse_targets(raw.get("targets", {}), tuple(registry))),
        policy=_parse_policy(raw),
        caches=_parse_caches(raw.get("caches"), raw.get("nixConfig")),
        shell_tools=_parse_shell(raw.get("devShell", {})),
    )
    logger.debug(
        f"Declaration for {declaration.root}: {len(declaration.exclude)} exclusion(s), "
        f"{len(declaration.overlays)} overlay(s), {len(declaration.targets)} target override(s)"
    )
    return declaration


def _aliased(raw: Mapping, key: str, default: Any) -> Any:
    present = [alias for alias in KEY_ALIASES[key] if alias in raw]
    if len(present) > 1:
        raise ConfigError(f"Conflicting keys: {' and '.join(present)}", field=key)
    return raw[present[0]] if present else default


def _parse_root(value: Any, base_dir: Optional[Union[str, Path]]) -> Path:
    if not isinstance(value, (str, Path)) or not str(value):
        raise ConfigError("must be a path", field="root")

    root = Path(value).expanduser()
    if not root.is_absolute():
        root = Path(base_dir or Path.cwd()) / root
    root = root.resolve()

    if not root.exists():
        raise ConfigError(f"Source root does not exist: {root}", field="root")
    if not root.is_dir():
        raise ConfigError(f"Source root is not a directory: {root}", field="root")
    return root


def _parse_exclude(value: Any) -> Tuple[str, ...]:
    if not isinstance(value, list):
        raise ConfigError("must be a list of path patterns", field="exclude")

    patterns: List[str] = []
    for index, pattern in enumerate(value):
        try:
            patterns.append(normalize_pattern(pattern))
        except ValueError as e:
            raise ConfigError(str(e), field=f"exclude[{index}]")
    return tuple(patterns)


def _parse_overlays(value: Any) -> Tuple[Overlay, ...]:
    if not isinstance(value, (list, tuple)):
        raise ConfigError("must be a list", field="overlays")

    overlays = []
    for index, spec in enumerate(value):
        try:
            if isinstance(spec, Mapping):
                overlays.append(overlay_from_spec(spec, index))
            else:
                overlays.append(as_overlay(spec, index))
        except (ValueError, OverlayError) as e:
            raise ConfigError(str(e), field=f"overlays[{index}]") from e
    return tuple(overlays)


def _parse_targets(value: Any, registry: Tuple[TargetDescriptor, ...]) -> Dict[str, bool]:
    if not isinstance(value, Mapping):
        raise ConfigError("must be a mapping of target triple to true/false", field="targets")

    overrides: Dict[str, bool] = {}
    for triple, enabled in value.items():
        if not isinstance(enabled, bool):
            raise ConfigError("must be true or false", field=f"targets.{triple}")
        overrides[str(triple)] = enabled

    check_overrides(registry, overrides)
    return overrides


def _parse_policy(raw: Mapping) -> Policy:
    clippy = _section(raw, "clippy", {"deny", "workspace"})
    test = _section(raw, "test", {"allTargets", "workspace"})

    deny = clippy.get("deny", [])
    if isinstance(deny, str):
        deny = [deny]
    if not isinstance(deny, list) or not all(isinstance(d, str) for d in deny):
        raise ConfigError("must be a list of lint groups", field="clippy.deny")

    return Policy(
        lint_strict="warnings" in deny,
        lint_deny=tuple(deny),
        lint_workspace=_bool(clippy, "workspace", False, "clippy.workspace"),
        test_scope=(
            TestScope.WORKSPACE
            if _bool(test, "workspace", False, "test.workspace")
            else TestScope.PACKAGE
        ),
        test_all_targets=_bool(test, "allTargets", False, "test.allTargets"),
        do_check=_bool(raw, "doCheck", True, "doCheck"),
    )


def _section(raw: Mapping, key: str, allowed: set) -> Mapping:
    value = raw.get(key, {})
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigError("must be a mapping", field=key)
    unknown = sorted(str(k) for k in value if k not in allowed)
    if unknown:
        raise ConfigError(f"unknown key(s): {', '.join(unknown)}", field=key)
    return {k: v for k, v in value.items() if v is not None}


def _bool(section: Mapping, key: str, default: bool, field_name: str) -> bool:
    value = section.get(key, default)
    if not isinstance(value, bool):
        raise ConfigError("must be true or false", field=field_name)
    return value


def _parse_caches(caches: Any, nix_config: Any) -> TrustRegistry:
    entries: Dict[str, Any] = {}

    if caches is not None:
        if isinstance(caches, Mapping):
            entries.update({str(k): v for k, v in caches.items()})
        elif isinstance(caches, list):
            for index, entry in enumerate(caches):
                if not isinstance(entry, Mapping):
                    raise ConfigError("must be a mapping", field=f"caches[{index}]")
                name = str(entry.get("name") or f"cache[{index}]")
                if name in entries:
                    raise ConfigError(f"cache '{name}' is declared twice", field=f"caches[{index}]")
                entries[name] = entry
        else:
            raise ConfigError("must be a mapping or a list", field="caches")

    if nix_config is not None:
        if not isinstance(nix_config, Mapping):
            raise ConfigError("must be a mapping", field="nixConfig")
        for name, entry in pair_nix_config(nix_config).items():
            if name in entries:
                raise ConfigError(f"cache '{name}' is declared twice", field="nixConfig")
            entries[name] = entry

    return register(entries)


def _parse_shell(value: Any) -> Tuple[str, ...]:
    section = _section({"devShell": value}, "devShell", {"packages", "buildInputs"})
    if "packages" in section and "buildInputs" in section:
        raise ConfigError("Conflicting keys: packages and buildInputs", field="devShell")

    tools = section.get("packages", section.get("buildInputs", []))
    if not isinstance(tools, list):
        raise ConfigError("must be a list of tool names", field="devShell.packages")
    for index, tool in enumerate(tools):
        if not isinstance(tool, str) or not tool.strip():
            raise ConfigError("must be a non-empty string", field=f"devShell.packages[{index}]")
    return tuple(tool.strip() for tool in tools)


__all__ = ["DEFAULT_CONFIG_NAME", "Declaration", "load", "load_file"]
