"""Semantic validation for flakeplan declarations.

Parsing rejects declarations that cannot be compiled. This module looks at a
parsed Declaration for things that compile but are probably not what the
author meant, and reports them with suggestions.
"""

from dataclasses import dataclass
from typing import Iterable, List
import os

from flakeplan.config.parser import Declaration
from flakeplan.core.filesystem import ExclusionSet, is_glob
from flakeplan.cross.targets import DEFAULT_TARGETS, TargetDescriptor, resolve


@dataclass
class ValidationIssue:
    """A single validation issue."""

    level: str  # 'error', 'warning', 'info'
    field: str  # Declaration field path
    message: str  # Human-readable message
    suggestion: str  # How to fix it


@dataclass
class ValidationResult:
    """Result of declaration validation."""

    valid: bool
    issues: List[ValidationIssue]


class ConfigValidator:
    """Validates a flakeplan Declaration."""

    def __init__(self, registry: Iterable[TargetDescriptor] = DEFAULT_TARGETS):
        """
        Initialize validator with the target registry.

        Args:
            registry: Known targets
        """
        self.registry = tuple(registry)
        self.issues: List[ValidationIssue] = []

    def validate(self, declaration: Declaration) -> ValidationResult:
        """
        Perform semantic validation.

        Args:
            declaration: Parsed declaration to validate

        Returns:
            ValidationResult with any issues found
        """
        self.issues = []

        self._validate_targets(declaration)
        self._validate_exclusions(declaration)
        self._validate_caches(declaration)
        self._validate_shell(declaration)
        self._validate_policy(declaration)

        has_errors = any(issue.level == "error" for issue in self.issues)

        return ValidationResult(valid=not has_errors, issues=self.issues)

    def _validate_targets(self, declaration: Declaration):
        """Validate the resolved target matrix."""
        enabled = resolve(self.registry, declaration.targets)
        if not enabled:
            self._add_error(
                "targets",
                "Every target is disabled; the plan would be empty",
                "Enable at least one target (e.g. x86_64-unknown-linux-gnu: true)",
            )

    def _validate_exclusions(self, declaration: Declaration):
        """Report exclusions that match nothing in the current checkout."""
        for pattern in declaration.exclude:
            if is_glob(pattern):
                if not self._glob_matches_anything(declaration, pattern):
                    self._add_info(
                        "exclude",
                        f"Pattern '{pattern}' matches nothing under {declaration.root}",
                        "Harmless, but remove it if the path no longer exists anywhere",
                    )
            elif not os.path.lexists(declaration.root / pattern):
                self._add_info(
                    "exclude",
                    f"Path '{pattern}' does not exist under {declaration.root}",
                    "Harmless, but remove it if the path no longer exists anywhere",
                )

    def _validate_caches(self, declaration: Declaration):
        """Validate trusted substituters."""
        for name, entry in declaration.caches.items():
            if not entry.trusted:
                self._add_warning(
                    f"caches.{name}",
                    f"Substituter {entry.url} is not marked trusted",
                    "Users without trusted-user rights will be prompted or ignore it",
                )
            if entry.url.startswith("http://"):
                self._add_warning(
                    f"caches.{name}.url",
                    f"Substituter {entry.url} uses plain HTTP",
                    "Use https:// so cache metadata cannot be tampered with in transit",
                )

    def _validate_shell(self, declaration: Declaration):
        """Validate development shell extensions."""
        seen = set()
        for tool in declaration.shell_tools:
            if tool in seen:
                self._add_info(
                    "devShell.packages",
                    f"Tool '{tool}' is listed more than once",
                    "Remove the duplicate entry",
                )
            seen.add(tool)

    def _validate_policy(self, declaration: Declaration):
        """Validate lint and test policy."""
        policy = declaration.policy
        if policy.lint_deny and not policy.lint_strict:
            self._add_info(
                "clippy.deny",
                "Lint warnings do not fail the build",
                'Add "warnings" to clippy.deny for a strict lint gate',
            )

    @staticmethod
    def _glob_matches_anything(declaration: Declaration, pattern: str) -> bool:
        excluded = ExclusionSet([pattern])
        for dirpath, dirnames, filenames in os.walk(declaration.root):
            base = os.path.relpath(dirpath, declaration.root)
            prefix = "" if base == "." else base.replace(os.sep, "/") + "/"
            for name in dirnames + filenames:
                if excluded.excludes(prefix + name):
                    return True
        return False

    def _add_error(self, field: str, message: str, suggestion: str):
        """Add error issue."""
        self.issues.append(
            ValidationIssue(level="error", field=field, message=message, suggestion=suggestion)
        )

    def _add_warning(self, field: str, message: str, suggestion: str):
        """Add warning issue."""
        self.issues.append(
            ValidationIssue(level="warning", field=field, message=message, suggestion=suggestion)
        )

    def _add_info(self, field: str, message: str, suggestion: str):
        """Add info issue."""
        self.issues.append(
            ValidationIssue(level="info", field=field, message=message, suggestion=suggestion)
        )


def format_validation_results(result: ValidationResult) -> str:
    """
    Format validation results for display.

    Args:
        result: Validation result to format

    Returns:
        Formatted string for display
    """
    if result.valid and not result.issues:
        return "✓ Declaration is valid"

    lines = []

    errors = [i for i in result.issues if i.level == "error"]
    warnings = [i for i in result.issues if i.level == "warning"]
    infos = [i for i in result.issues if i.level == "info"]

    for title, issues in (("❌ Errors:", errors), ("⚠️  Warnings:", warnings), ("ℹ️  Info:", infos)):
        if not issues:
            continue
        lines.append(title)
        for issue in issues:
            lines.append(f"  {issue.field}: {issue.message}")
            lines.append(f"    → {issue.suggestion}")
        lines.append("")

    return "\n".join(lines).rstrip()
