"""
Source fingerprinting for flakeplan.

This module computes the content hash of a filtered source tree. The hash is
the cache key that correlates a build plan with cached artifacts, so it must
be reproducible across machines and checkouts:

- Entries are visited in byte order of their relative path as stored on disk,
  so names that are not valid UTF-8 hash deterministically
- Each entry contributes its kind, relative path, executable bit, length and
  content (a symlink contributes its target string)
- Timestamps, ownership and other permission bits never contribute
- Empty directories are not represented
"""

import hashlib
import logging
import os
import secrets
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Union

from flakeplan.core.exceptions import SourceTreeError
from flakeplan.core.filesystem import FilteredTree, TreeEntry, filter_tree

logger = logging.getLogger(__name__)

SUPPORTED_ALGORITHMS = ("sha256", "sha512")
CHUNK_SIZE = 8192


@dataclass(frozen=True)
class SourceFingerprint:
    """
    Content-derived identifier of a filtered source tree.

    Attributes:
        algorithm: Hash algorithm name
        digest: Hex digest
        file_count: Number of entries hashed
    """

    algorithm: str
    digest: str
    file_count: int = 0

    def __str__(self) -> str:
        return f"{self.algorithm}:{self.digest}"


def parse_fingerprint(value: str) -> SourceFingerprint:
    """
    Parse an ``algorithm:digest`` string.

    Raises:
        ValueError: If the string is not a valid fingerprint
    """
    if ":" not in value:
        raise ValueError(f"Fingerprint must be 'algorithm:digest', got: {value}")

    algorithm, digest = value.split(":", 1)
    algorithm = algorithm.lower()
    if algorithm not in SUPPORTED_ALGORITHMS:
        raise ValueError(f"Unsupported fingerprint algorithm: {algorithm}")

    digest = digest.lower()
    expected_len = hashlib.new(algorithm).digest_size * 2
    if len(digest) != expected_len or not all(c in "0123456789abcdef" for c in digest):
        raise ValueError(f"Invalid {algorithm} digest: {digest}")

    return SourceFingerprint(algorithm=algorithm, digest=digest)


def fingerprint(tree: FilteredTree, algorithm: str = "sha256") -> SourceFingerprint:
    """
    Compute the fingerprint of a filtered source tree.

    Args:
        tree: Filtered tree produced by ``filter_tree``
        algorithm: Hash algorithm ('sha256', 'sha512')

    Returns:
        SourceFingerprint of the tree

    Raises:
        ValueError: If algorithm is not supported
        SourceTreeError: If a file cannot be read or changes while hashing

    Example:
        >>> tree = filter_tree("/src/project", ["build"])
        >>> str(fingerprint(tree))
        'sha256:3f2a...'
    """
    algorithm = algorithm.lower()
    if algorithm not in SUPPORTED_ALGORITHMS:
        raise ValueError(f"Unsupported hash algorithm: {algorithm}")

    hasher = hashlib.new(algorithm)
    hasher.update(b"flakeplan-source-v1\x00")

    # Canonical byte order regardless of how the tree was built
    entries = sorted(tree.entries, key=lambda e: os.fsencode(e.path))
    for entry in entries:
        _hash_entry(hasher, tree, entry)

    result = SourceFingerprint(
        algorithm=algorithm, digest=hasher.hexdigest(), file_count=len(entries)
    )
    logger.debug(f"Fingerprinted {len(entries)} entries under {tree.root}: {result}")
    return result


def fingerprint_path(
    root: Union[str, Path], exclusions: Iterable[str] = (), algorithm: str = "sha256"
) -> SourceFingerprint:
    """Filter a source tree and fingerprint it in one step."""
    return fingerprint(filter_tree(root, exclusions), algorithm)


def verify_fingerprint(tree: FilteredTree, expected: Union[str, SourceFingerprint]) -> bool:
    """
    Check a tree against an expected fingerprint using constant-time comparison.

    Args:
        tree: Filtered tree to check
        expected: Expected fingerprint (object or ``algorithm:digest`` string)

    Returns:
        True if the tree matches
    """
    if isinstance(expected, str):
        expected = parse_fingerprint(expected)

    actual = fingerprint(tree, expected.algorithm)
    return secrets.compare_digest(actual.digest.encode("utf-8"), expected.digest.encode("utf-8"))


def _hash_entry(hasher, tree: FilteredTree, entry: TreeEntry) -> None:
    path = tree.absolute(entry)
    name = os.fsencode(entry.path)

    if entry.kind == "symlink":
        try:
            target = os.fsencode(os.readlink(path))
        except OSError as e:
            raise SourceTreeError(f"Cannot read symlink {entry.path}: {e}") from e
        _update_header(hasher, b"symlink", name, b"-", len(target))
        hasher.update(target)
        return

    mode = b"x" if entry.executable else b"-"
    try:
        with open(path, "rb") as f:
            size = os.fstat(f.fileno()).st_size
            _update_header(hasher, b"file", name, mode, size)

            bytes_read = 0
            while chunk := f.read(CHUNK_SIZE):
                hasher.update(chunk)
                bytes_read += len(chunk)
    except OSError as e:
        raise SourceTreeError(f"Cannot read {entry.path}: {e}") from e

    if bytes_read != size:
        raise SourceTreeError(f"File changed while fingerprinting: {entry.path}")


def _update_header(hasher, kind: bytes, name: bytes, mode: bytes, size: int) -> None:
    # Length-prefixed fields keep entry boundaries unambiguous
    hasher.update(kind + b"\x00")
    hasher.update(str(len(name)).encode("ascii") + b":" + name + b"\x00")
    hasher.update(mode + b"\x00")
    hasher.update(str(size).encode("ascii") + b"\x00")


__all__ = [
    "SUPPORTED_ALGORITHMS",
    "SourceFingerprint",
    "fingerprint",
    "fingerprint_path",
    "parse_fingerprint",
    "verify_fingerprint",
]
