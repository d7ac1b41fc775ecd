"""
Tests for overlay composition.
"""

import pytest

from flakeplan.core.exceptions import (
    CyclicPackageError,
    OverlayError,
    UnresolvedPackageError,
)
from flakeplan.packages.base import PackageDefinition, PackageSet, default_package_set
from flakeplan.packages.overlays import (
    Overlay,
    as_overlay,
    compose,
    lazy,
    overlay_from_spec,
)


@pytest.mark.unit
class TestCompose:
    """Test folding overlays over a base set."""

    def test_forward_reference_to_final(self):
        """Test that a later overlay can read what an earlier one defined."""
        overlays = [
            lambda final, prev: {"pkgX": 1},
            lambda final, prev: {"pkgY": lazy(lambda: final.pkgX + 1)},
        ]

        result = compose({"pkgA": 0}, overlays)

        assert result["pkgY"] == 2
        assert dict(result) == {"pkgA": 0, "pkgX": 1, "pkgY": 2}

    def test_earlier_overlay_sees_later_definition_through_final(self):
        """Test that final is the fully composed set, not the set so far."""
        overlays = [
            lambda final, prev: {"uses": lazy(lambda: final.tool)},
            lambda final, prev: {"tool": "v2"},
        ]

        assert compose({"tool": "v1"}, overlays)["uses"] == "v2"

    def test_prev_is_previous_layer(self):
        """Test that prev exposes the set before the current overlay."""
        overlays = [
            lambda final, prev: {"ver": prev.ver + 1},
            lambda final, prev: {"ver": prev.ver * 10},
        ]

        assert compose({"ver": 1}, overlays)["ver"] == 20

    def test_later_overlay_shadows_earlier(self):
        """Test that the last definition wins."""
        overlays = [
            lambda final, prev: {"pkg": "first"},
            lambda final, prev: {"pkg": "second"},
        ]

        assert compose({}, overlays)["pkg"] == "second"

    def test_identity_law(self):
        """Test that composing no overlays returns the base set."""
        base = default_package_set()

        assert compose(base, []) is base

    def test_empty_overlay_keeps_base(self):
        """Test that an overlay returning nothing keeps every package."""
        base = {"a": 1, "b": 2}

        assert dict(compose(base, [lambda final, prev: {}])) == base

    def test_plain_mapping_base(self):
        """Test that a plain dict base becomes a PackageSet."""
        result = compose({"a": 1}, [])

        assert isinstance(result, PackageSet)
        assert result["a"] == 1

    def test_each_overlay_called_once(self):
        """Test that overlays are applied exactly once."""
        calls = []

        def counting(final, prev):
            calls.append(1)
            return {"pkg": lazy(lambda: final.other)}

        compose({"other": 1}, [counting, lambda final, prev: {"more": 2}])

        assert len(calls) == 1

    def test_lazy_value_evaluated_once(self):
        """Test that a lazy value is memoized."""
        calls = []

        def build():
            calls.append(1)
            return "built"

        overlays = [
            lambda final, prev: {"a": lazy(build)},
            lambda final, prev: {
                "b": lazy(lambda: final.a),
                "c": lazy(lambda: final["a"]),
            },
        ]

        result = compose({}, overlays)

        assert result["b"] == result["c"] == "built"
        assert len(calls) == 1

    def test_package_definition_override(self):
        """Test overriding a base package through prev."""
        base = default_package_set()
        overlays = [
            lambda final, prev: {"nats-server": prev["nats-server"].override(version="2.11.0")}
        ]

        assert compose(base, overlays)["nats-server"].version == "2.11.0"


@pytest.mark.unit
class TestComposeErrors:
    """Test failure modes of composition."""

    def test_unresolved_reference(self):
        """Test referencing a package no layer defines."""
        overlays = [lambda final, prev: {"pkgY": lazy(lambda: final.missing)}]

        with pytest.raises(UnresolvedPackageError) as exc_info:
            compose({}, overlays)

        assert exc_info.value.package == "missing"
        assert exc_info.value.referrer == "pkgY"

    def test_unresolved_in_prev(self):
        """Test that prev does not see packages defined later."""
        overlays = [
            lambda final, prev: {"a": lazy(lambda: prev.b)},
            lambda final, prev: {"b": 1},
        ]

        with pytest.raises(UnresolvedPackageError, match="'b'"):
            compose({}, overlays)

    def test_self_reference_is_cycle(self):
        """Test that a package depending on itself is detected."""
        overlays = [lambda final, prev: {"loop": lazy(lambda: final.loop)}]

        with pytest.raises(CyclicPackageError) as exc_info:
            compose({}, overlays)

        assert exc_info.value.package == "loop"

    def test_mutual_cycle(self):
        """Test a two-package cycle across overlays."""
        overlays = [
            lambda final, prev: {"a": lazy(lambda: final.b)},
            lambda final, prev: {"b": lazy(lambda: final.a)},
        ]

        with pytest.raises(CyclicPackageError):
            compose({}, overlays)

    def test_eager_read_of_final(self):
        """Test that reading final while overlays run is rejected."""
        overlays = [
            lambda final, prev: {"pkgX": 1},
            lambda final, prev: {"pkgY": final.pkgX + 1},
        ]

        with pytest.raises(OverlayError, match="lazy"):
            compose({}, overlays)

    def test_eager_read_error_names_overlay(self):
        """Test that the error names the overlay and the value it read."""

        def bump(final, prev):
            return {"pkgY": final.pkgX + 1}

        with pytest.raises(OverlayError) as exc_info:
            compose({"pkgX": 1}, [bump])

        message = str(exc_info.value)
        assert "'bump'" in message
        assert "final.pkgX" in message
        assert "lazy()" in message

    def test_non_mapping_result(self):
        """Test that an overlay must return a mapping."""
        with pytest.raises(OverlayError, match="expected a mapping"):
            compose({}, [lambda final, prev: ["pkg"]])

    def test_invalid_package_name(self):
        """Test that package names must be non-empty strings."""
        with pytest.raises(OverlayError, match="invalid name"):
            compose({}, [lambda final, prev: {"": 1}])

    def test_non_callable_overlay(self):
        """Test that overlays must be callable."""
        with pytest.raises(OverlayError, match="not callable"):
            compose({}, ["not an overlay"])


@pytest.mark.unit
class TestAsOverlay:
    """Test wrapping callables into overlays."""

    def test_named_function_keeps_name(self):
        """Test that function names label overlays."""

        def rust_tools(final, prev):
            return {}

        assert as_overlay(rust_tools, 0).name == "rust_tools"

    def test_lambda_gets_positional_name(self):
        """Test that anonymous overlays are labeled by position."""
        assert as_overlay(lambda final, prev: {}, 3).name == "overlay[3]"

    def test_overlay_passes_through(self):
        """Test that Overlay instances are kept as-is."""
        overlay = Overlay("custom", lambda final, prev: {})

        assert as_overlay(overlay, 0) is overlay


@pytest.mark.unit
class TestDeclarativeOverlay:
    """Test overlays built from YAML data."""

    def test_new_package(self):
        """Test defining a new package with a version."""
        overlay = overlay_from_spec(
            {"name": "extra", "packages": {"wit-deps": {"version": "0.4.0", "outputs": ["out", "bin"]}}}
        )

        pkg = compose(default_package_set(), [overlay])["wit-deps"]

        assert pkg == PackageDefinition("wit-deps", "0.4.0", outputs=("out", "bin"))
        assert overlay.name == "extra"

    def test_reference_with_override(self):
        """Test overriding an existing package through a prev reference."""
        overlay = overlay_from_spec(
            {"packages": {"nats-server": {"ref": "prev.nats-server", "with": {"version": "2.11.0"}}}}
        )

        result = compose(default_package_set(), [overlay])

        assert result["nats-server"].version == "2.11.0"
        assert overlay.name == "overlay[0]"

    def test_nested_set_with_final_reference(self):
        """Test a nested package set reading the final composition."""
        overlays = [
            overlay_from_spec(
                {"name": "unstable", "packages": {"pkgsUnstable": {"set": {"natscli": {"ref": "final.natscli"}}}}}
            ),
            overlay_from_spec(
                {"name": "bump", "packages": {"natscli": {"ref": "prev.natscli", "with": {"version": "0.2.0"}}}},
                1,
            ),
        ]

        result = compose(default_package_set(), overlays)

        assert result.lookup("pkgsUnstable.natscli").version == "0.2.0"

    def test_literal_value(self):
        """Test binding a plain value."""
        overlay = overlay_from_spec({"packages": {"channel": "nightly"}})

        assert compose({}, [overlay])["channel"] == "nightly"

    def test_unresolved_reference(self):
        """Test that dangling references fail at composition time."""
        overlay = overlay_from_spec({"packages": {"x": {"ref": "final.nope"}}})

        with pytest.raises(UnresolvedPackageError):
            compose({}, [overlay])

    def test_with_on_non_package(self):
        """Test that 'with' requires a package definition."""
        overlay = overlay_from_spec({"packages": {"x": {"ref": "prev.channel", "with": {"version": "1"}}}})

        with pytest.raises(OverlayError, match="non-package"):
            compose({"channel": "stable"}, [overlay])

    @pytest.mark.parametrize(
        "spec,message",
        [
            ({"packages": {}, "extra": 1}, "unknown overlay key"),
            ({"packages": ["a"]}, "must be a mapping"),
            ({"packages": {"x": {"ref": "nodot"}}}, "ref must look like"),
            ({"packages": {"x": {"ref": "self.x"}}}, "scope must be"),
            ({"packages": {"x": {"ref": "prev.x", "with": "v"}}}, "'with' must be a mapping"),
            ({"packages": {"x": {"set": ["a"]}}}, "'set' must be a mapping"),
        ],
    )
    def test_malformed(self, spec, message):
        """Test rejection of malformed overlay specs."""
        with pytest.raises(ValueError, match=message):
            overlay_from_spec(spec)
