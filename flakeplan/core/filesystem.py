"""
Source tree filtering and file system utilities for flakeplan.

This module provides:
- Exclusion pattern normalization (literal path prefixes and globs)
- Filtered traversal of a source tree (the build input view)
- Safe file operations (atomic writes)

Filtering is set subtraction: a path is dropped when any exclusion pattern
matches it or one of its ancestors, so the order in which patterns are
declared never changes the result.
"""

import fnmatch
import logging
import os
import stat
import tempfile
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Iterable, Iterator, List, Tuple, Union

from flakeplan.core.exceptions import SourceTreeError

logger = logging.getLogger(__name__)

GLOB_METACHARACTERS = frozenset("*?[")


# ============================================================================
# Exclusion Patterns
# ============================================================================


def is_glob(pattern: str) -> bool:
    """Return True if the pattern contains glob metacharacters."""
    return any(ch in GLOB_METACHARACTERS for ch in pattern)


def normalize_pattern(pattern: str) -> str:
    """
    Validate and normalize an exclusion pattern.

    Leading ``./`` and trailing ``/`` are stripped so that ``build``,
    ``./build`` and ``build/`` all denote the same exclusion.

    Args:
        pattern: Exclusion pattern relative to the source root

    Returns:
        Normalized pattern in POSIX form

    Raises:
        ValueError: If the pattern is not a valid relative path glob

    Example:
        >>> normalize_pattern("./build/")
        'build'
    """
    if not isinstance(pattern, str):
        raise ValueError(f"pattern must be a string, got {type(pattern).__name__}")
    if "\x00" in pattern:
        raise ValueError("pattern contains a NUL byte")

    normalized = pattern.strip().replace("\\", "/")
    while normalized.startswith("./"):
        normalized = normalized[2:]
    normalized = normalized.rstrip("/")

    if not normalized or normalized == ".":
        raise ValueError("pattern is empty")
    if normalized.startswith("/"):
        raise ValueError(f"pattern must be relative to the source root: {pattern}")

    parts = [part for part in normalized.split("/") if part]
    if ".." in parts:
        raise ValueError(f"pattern must not leave the source root: {pattern}")

    _check_brackets(normalized)
    return "/".join(part for part in parts if part != ".")


def _check_brackets(pattern: str) -> None:
    """Reject glob character classes that are never closed."""
    in_class = False
    for index, ch in enumerate(pattern):
        if ch == "[" and not in_class:
            in_class = True
        elif ch == "]" and in_class:
            in_class = False
        elif ch == "/" and in_class:
            raise ValueError(f"unterminated character class at offset {index}")
    if in_class:
        raise ValueError(f"unterminated character class in pattern: {pattern}")


class ExclusionSet:
    """
    Order-independent set of exclusion patterns.

    Literal patterns match component-wise path prefixes: ``build`` excludes
    ``build`` and ``build/tmp.txt`` but not ``builder.txt``. Glob patterns are
    matched with ``fnmatch`` against every ancestor-or-self path, so a
    pattern matching a directory excludes its whole subtree.
    """

    def __init__(self, patterns: Iterable[str]):
        normalized = {normalize_pattern(p) for p in patterns}
        self.literals: Tuple[Tuple[str, ...], ...] = tuple(
            sorted(tuple(p.split("/")) for p in normalized if not is_glob(p))
        )
        self.globs: Tuple[str, ...] = tuple(sorted(p for p in normalized if is_glob(p)))

    def __len__(self) -> int:
        return len(self.literals) + len(self.globs)

    def excludes(self, relative_path: str) -> bool:
        """Check whether a POSIX path relative to the root is excluded."""
        parts = tuple(PurePosixPath(relative_path).parts)

        for literal in self.literals:
            if parts[: len(literal)] == literal:
                return True

        if self.globs:
            for depth in range(1, len(parts) + 1):
                prefix = "/".join(parts[:depth])
                if any(fnmatch.fnmatchcase(prefix, g) for g in self.globs):
                    return True

        return False

    def patterns(self) -> List[str]:
        """Normalized patterns in canonical (sorted) order."""
        return sorted(["/".join(p) for p in self.literals] + list(self.globs))


# ============================================================================
# Filtered Tree
# ============================================================================


@dataclass(frozen=True)
class TreeEntry:
    """A single file or symlink kept by the source filter."""

    path: str
    kind: str  # 'file' or 'symlink'
    executable: bool = False


@dataclass(frozen=True)
class FilteredTree:
    """
    Filtered view of a source tree.

    Attributes:
        root: Absolute source root
        entries: Kept entries, sorted by the raw bytes of their relative path
    """

    root: Path
    entries: Tuple[TreeEntry, ...]

    def __iter__(self) -> Iterator[TreeEntry]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def __contains__(self, relative_path: object) -> bool:
        return any(entry.path == relative_path for entry in self.entries)

    def paths(self) -> List[str]:
        """Relative POSIX paths of all kept entries."""
        return [entry.path for entry in self.entries]

    def absolute(self, entry: TreeEntry) -> Path:
        """Absolute path of an entry."""
        return self.root.joinpath(*entry.path.split("/"))


def filter_tree(root: Union[str, Path], exclusions: Iterable[str] = ()) -> FilteredTree:
    """
    Traverse a source tree, removing excluded paths.

    Excluding a path that does not exist is not an error. Symlinks are never
    followed; a symlink is kept (or excluded) as an entry of its own.

    Args:
        root: Source root directory
        exclusions: Exclusion patterns relative to root

    Returns:
        FilteredTree with entries in canonical order

    Raises:
        SourceTreeError: If root is not a directory or cannot be traversed
        ValueError: If an exclusion pattern is invalid

    Example:
        >>> tree = filter_tree("/src/project", ["build/", "*.log"])
        >>> tree.paths()
        ['src/main.x']
    """
    root = Path(root).resolve()
    if not root.is_dir():
        raise SourceTreeError(f"Source root is not a directory: {root}")

    excluded = ExclusionSet(exclusions)
    _log_missing_literals(root, excluded)

    entries = sorted(_walk(root, excluded), key=lambda e: os.fsencode(e.path))
    logger.debug(
        f"Filtered {root}: kept {len(entries)} entries with {len(excluded)} exclusion(s)"
    )
    return FilteredTree(root=root, entries=tuple(entries))


def _walk(root: Path, excluded: ExclusionSet) -> Iterator[TreeEntry]:
    def on_error(error: OSError) -> None:
        raise SourceTreeError(f"Cannot traverse source tree: {error}") from error

    for dirpath, dirnames, filenames in os.walk(root, onerror=on_error):
        base = Path(dirpath).relative_to(root).as_posix()
        prefix = "" if base == "." else f"{base}/"

        kept_dirs = []
        for name in dirnames:
            relative = prefix + name
            if excluded.excludes(relative):
                continue
            full = os.path.join(dirpath, name)
            if os.path.islink(full):
                yield TreeEntry(path=relative, kind="symlink")
            else:
                kept_dirs.append(name)
        dirnames[:] = sorted(kept_dirs)

        for name in filenames:
            relative = prefix + name
            if excluded.excludes(relative):
                continue
            entry = _classify(os.path.join(dirpath, name), relative)
            if entry is not None:
                yield entry


def _classify(full_path: str, relative: str):
    try:
        info = os.lstat(full_path)
    except OSError as e:
        raise SourceTreeError(f"Cannot stat {relative}: {e}") from e

    if stat.S_ISLNK(info.st_mode):
        return TreeEntry(path=relative, kind="symlink")
    if stat.S_ISREG(info.st_mode):
        return TreeEntry(
            path=relative, kind="file", executable=bool(info.st_mode & stat.S_IXUSR)
        )

    logger.debug(f"Skipping special file: {relative}")
    return None


def _log_missing_literals(root: Path, excluded: ExclusionSet) -> None:
    for literal in excluded.literals:
        if not os.path.lexists(root.joinpath(*literal)):
            logger.debug(f"Exclusion '{'/'.join(literal)}' matches nothing, ignoring")


# ============================================================================
# Safe File Operations
# ============================================================================


def atomic_write(
    file_path: Union[str, Path], content: Union[str, bytes], encoding: str = "utf-8"
) -> None:
    """
    Write file atomically using temp file + rename.

    This ensures the file is never in a partially-written state.
    If the write fails, the original file (if any) remains unchanged.

    Args:
        file_path: Path to write to
        content: Content to write (string or bytes)
        encoding: Text encoding (used only for string content)

    Example:
        >>> atomic_write('plan.json', '{"units": []}')
    """
    file_path = Path(file_path)
    file_path.parent.mkdir(parents=True, exist_ok=True)

    # Create temp file in same directory (ensures same filesystem)
    temp_fd, temp_path_str = tempfile.mkstemp(
        dir=file_path.parent, prefix=f".{file_path.name}.", suffix=".tmp"
    )
    temp_path = Path(temp_path_str)

    try:
        if isinstance(content, str):
            with open(temp_fd, "w", encoding=encoding) as f:
                f.write(content)
        else:
            with open(temp_fd, "wb") as f:
                f.write(content)

        temp_path.replace(file_path)

    except Exception:
        temp_path.unlink(missing_ok=True)
        raise


__all__ = [
    "ExclusionSet",
    "FilteredTree",
    "TreeEntry",
    "atomic_write",
    "filter_tree",
    "is_glob",
    "normalize_pattern",
]
