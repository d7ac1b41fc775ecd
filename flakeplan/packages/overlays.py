"""
Overlay composition for package sets.

An overlay is a function ``(final, prev) -> partial overrides``:

- ``prev`` is the package set produced by the base and every earlier overlay
  (never the overlay's own output)
- ``final`` is a forward reference to the fully composed set

Each overlay is called exactly once and its keys are known immediately.
Values that need ``final`` are wrapped with ``lazy()`` so they are computed
only when forced, after all overlays have been applied. Every value lives in
a cell that records whether it is pending, being evaluated or done; forcing a
cell that is already being evaluated is a cycle.

Example:
    >>> from flakeplan.packages.overlays import compose, lazy
    >>> base = {"pkgA": 0}
    >>> overlays = [
    ...     lambda final, prev: {"pkgX": 1},
    ...     lambda final, prev: {"pkgY": lazy(lambda: final.pkgX + 1)},
    ... ]
    >>> compose(base, overlays)["pkgY"]
    2

Reading ``final`` directly inside an overlay, as in
``{"pkgY": final.pkgX + 1}``, raises ``OverlayError``: the final set does not
exist until every overlay has returned, so the value must be ``lazy()``.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from flakeplan.core.exceptions import (
    CyclicPackageError,
    OverlayError,
    UnresolvedPackageError,
)
from flakeplan.packages.base import PackageDefinition, PackageSet

logger = logging.getLogger(__name__)


# ============================================================================
# Deferred Values
# ============================================================================


class Lazy:
    """A package value computed on first use."""

    __slots__ = ("thunk",)

    def __init__(self, thunk: Callable[[], Any]):
        if not callable(thunk):
            raise TypeError("lazy() requires a zero-argument callable")
        self.thunk = thunk

    def __repr__(self) -> str:
        return f"Lazy({self.thunk!r})"


def lazy(thunk: Callable[[], Any]) -> Lazy:
    """Defer a package value until the composed set is forced."""
    return Lazy(thunk)


_PENDING = "pending"
_EVALUATING = "evaluating"
_DONE = "done"


class _Cell:
    __slots__ = ("name", "state", "thunk", "value")

    def __init__(self, name: str, value: Any):
        self.name = name
        if isinstance(value, Lazy):
            self.state = _PENDING
            self.thunk = value.thunk
            self.value = None
        else:
            self.state = _DONE
            self.thunk = None
            self.value = value

    def force(self, composition: "_Composition") -> Any:
        if self.state == _DONE:
            return self.value
        if self.state == _EVALUATING:
            raise CyclicPackageError(self.name)

        self.state = _EVALUATING
        composition.stack.append(self.name)
        try:
            value = self.thunk()
            # A thunk may itself hand back a deferred value
            while isinstance(value, Lazy):
                value = value.thunk()
        except BaseException:
            self.state = _PENDING
            raise
        finally:
            composition.stack.pop()

        self.value = value
        self.thunk = None
        self.state = _DONE
        return value


# ============================================================================
# Views
# ============================================================================


class PackageView:
    """
    Read-only view handed to overlays as ``final`` or ``prev``.

    Packages are reachable as attributes (``final.cargo``) or items
    (``final["cargo-audit"]``).
    """

    def __init__(self, composition: "_Composition", label: str, cells: Optional[Dict[str, _Cell]]):
        self._composition = composition
        self._label = label
        self._cells = cells

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        return self[name]

    def __getitem__(self, name: str) -> Any:
        cells = self._available(name)
        cell = cells.get(name)
        if cell is None:
            raise UnresolvedPackageError(name, self._composition.referrer())
        return cell.force(self._composition)

    def __contains__(self, name: object) -> bool:
        return name in self._available(str(name))

    def __iter__(self):
        return iter(sorted(self._available(None)))

    def get(self, name: str, default: Any = None) -> Any:
        if name in self:
            return self[name]
        return default

    def lookup(self, reference: str) -> Any:
        """Resolve a dotted reference, descending into nested mappings."""
        head, *rest = reference.split(".")
        value = self[head]
        for depth, segment in enumerate(rest, start=1):
            if not isinstance(value, Mapping) or segment not in value:
                missing = ".".join([head, *rest[:depth]])
                raise UnresolvedPackageError(missing, self._composition.referrer())
            value = value[segment]
        return value

    def _available(self, name: Optional[str]) -> Dict[str, _Cell]:
        if self._cells is None:
            overlay = self._composition.current or "<unknown>"
            wanted = f"final.{name}" if name else "final"
            raise OverlayError(
                f"Overlay '{overlay}' read {wanted} while overlays were still "
                "being applied; wrap the value in lazy()"
            )
        return self._cells

    def __repr__(self) -> str:
        return f"<PackageView {self._label}>"


# ============================================================================
# Overlays
# ============================================================================


OverlayFunction = Callable[[PackageView, PackageView], Mapping]


@dataclass(frozen=True)
class Overlay:
    """
    Named package-set transformation.

    Attributes:
        name: Label used in logs and error messages
        function: Callable ``(final, prev) -> Mapping`` of overrides
    """

    name: str
    function: OverlayFunction

    def __call__(self, final: PackageView, prev: PackageView) -> Mapping:
        return self.function(final, prev)


def as_overlay(value: Union[Overlay, OverlayFunction], index: int) -> Overlay:
    """Wrap a plain callable into an ``Overlay``."""
    if isinstance(value, Overlay):
        return value
    if callable(value):
        name = getattr(value, "__name__", "") or ""
        if not name or name == "<lambda>":
            name = f"overlay[{index}]"
        return Overlay(name=name, function=value)
    raise OverlayError(f"overlay[{index}] is not callable: {value!r}")


class _Composition:
    def __init__(self):
        self.current: Optional[str] = None
        self.stack: List[str] = []

    def referrer(self) -> Optional[str]:
        if self.stack:
            return self.stack[-1]
        return self.current


def compose(
    base: Mapping[str, Any], overlays: Sequence[Union[Overlay, OverlayFunction]]
) -> PackageSet:
    """
    Fold overlays left-to-right over a base package set.

    Args:
        base: Base package set
        overlays: Ordered overlays; later overlays shadow earlier definitions

    Returns:
        Fully evaluated PackageSet

    Raises:
        UnresolvedPackageError: If a value references a package never defined
        CyclicPackageError: If a value depends on itself
        OverlayError: If an overlay is malformed or reads ``final`` eagerly
    """
    overlays = [as_overlay(o, i) for i, o in enumerate(overlays)]
    if not overlays:
        return base if isinstance(base, PackageSet) else PackageSet(base)

    composition = _Composition()
    final = PackageView(composition, "final", None)
    layer: Dict[str, _Cell] = {
        name: _Cell(name, value) for name, value in base.items()
    }

    for overlay in overlays:
        prev = PackageView(composition, f"prev({overlay.name})", dict(layer))
        composition.current = overlay.name
        overrides = overlay(final, prev)
        if not isinstance(overrides, Mapping):
            raise OverlayError(
                f"Overlay '{overlay.name}' returned {type(overrides).__name__}, "
                "expected a mapping"
            )

        shadowed = 0
        for name, value in overrides.items():
            if not isinstance(name, str) or not name:
                raise OverlayError(f"Overlay '{overlay.name}' defined an invalid name: {name!r}")
            if name in layer:
                shadowed += 1
            layer[name] = _Cell(name, value)

        logger.debug(
            f"Applied overlay '{overlay.name}': {len(overrides)} package(s), "
            f"{shadowed} shadowed"
        )

    composition.current = None
    final._cells = layer

    # Forcing every value surfaces missing references now rather than later
    resolved = {name: layer[name].force(composition) for name in sorted(layer)}
    logger.info(f"Composed package set: {len(resolved)} packages from {len(overlays)} overlay(s)")
    return PackageSet(resolved)


# ============================================================================
# Declarative Overlays
# ============================================================================


def overlay_from_spec(spec: Mapping, index: int = 0) -> Overlay:
    """
    Build an overlay from its declarative (YAML) form.

    Format::

        name: unstable-tools
        packages:
          wit-deps: {version: "0.4.0"}
          nats-server: {ref: prev.nats-server, with: {version: "2.11.0"}}
          pkgsUnstable:
            set:
              natscli: {ref: final.natscli}

    A mapping with ``ref`` is a reference to ``final.<name>`` or
    ``prev.<name>`` (optionally overridden with ``with``); a mapping with
    ``version`` is a new package; a mapping with ``set`` is a nested package
    set; anything else is bound as a literal.

    Raises:
        ValueError: If the spec is malformed
    """
    if not isinstance(spec, Mapping):
        raise ValueError("overlay must be a mapping with 'name' and 'packages'")

    unknown = set(spec) - {"name", "packages"}
    if unknown:
        raise ValueError(f"unknown overlay key(s): {', '.join(sorted(unknown))}")

    name = spec.get("name") or f"overlay[{index}]"
    packages = spec.get("packages") or {}
    if not isinstance(packages, Mapping):
        raise ValueError("'packages' must be a mapping")

    builders = {str(pkg): _value_builder(str(pkg), value) for pkg, value in packages.items()}

    def apply(final: PackageView, prev: PackageView) -> Dict[str, Any]:
        return {pkg: build(final, prev) for pkg, build in builders.items()}

    return Overlay(name=str(name), function=apply)


def _value_builder(pkg: str, value: Any) -> Callable[[PackageView, PackageView], Any]:
    if isinstance(value, Mapping) and "ref" in value:
        return _reference_builder(pkg, value)

    if isinstance(value, Mapping) and "set" in value:
        nested = value["set"]
        if not isinstance(nested, Mapping):
            raise ValueError(f"{pkg}: 'set' must be a mapping")
        children = {str(k): _value_builder(f"{pkg}.{k}", v) for k, v in nested.items()}

        def build_set(final, prev):
            return lazy(
                lambda: PackageSet(
                    {k: _force(child(final, prev)) for k, child in children.items()}
                )
            )

        return build_set

    if isinstance(value, Mapping) and "version" in value:
        fields = dict(value)
        definition = PackageDefinition(
            name=pkg.rsplit(".", 1)[-1],
            version=fields.pop("version"),
            outputs=tuple(fields.pop("outputs", ("out",))),
            attrs=fields,
        )
        return lambda final, prev: definition

    return lambda final, prev: value


def _reference_builder(pkg: str, value: Mapping) -> Callable[[PackageView, PackageView], Any]:
    ref = value["ref"]
    if not isinstance(ref, str) or "." not in ref:
        raise ValueError(f"{pkg}: ref must look like 'final.<name>' or 'prev.<name>'")

    scope, target = ref.split(".", 1)
    if scope not in ("final", "prev") or not target:
        raise ValueError(f"{pkg}: ref scope must be 'final' or 'prev', got '{scope}'")

    changes = value.get("with")
    if changes is not None and not isinstance(changes, Mapping):
        raise ValueError(f"{pkg}: 'with' must be a mapping")

    def build(final, prev):
        view = final if scope == "final" else prev

        def resolve_ref():
            resolved = view.lookup(target)
            if changes is None:
                return resolved
            if not isinstance(resolved, PackageDefinition):
                raise OverlayError(f"{pkg}: cannot apply 'with' to non-package {ref}")
            return resolved.override(**changes)

        return lazy(resolve_ref)

    return build


def _force(value: Any) -> Any:
    while isinstance(value, Lazy):
        value = value.thunk()
    return value


__all__ = [
    "Lazy",
    "Overlay",
    "PackageView",
    "as_overlay",
    "compose",
    "lazy",
    "overlay_from_spec",
]
