"""
Trusted binary cache (substituter) configuration.

This module validates the substituters a declaration trusts and the public
keys used to verify what they serve. An entry is usable only when it carries
both a URL and a key: a substituter whose artifacts cannot be verified is a
configuration error, never an "untrusted but used" fallback.

Usage:
    from flakeplan.caching.trust import register

    registry = register({
        "nix-community": {
            "url": "https://nix-community.cachix.org",
            "public_key": "nix-community.cachix.org-1:mB9FSh9qf2dCimDSUo8Zy7bkq5CX+/rkCWyvRCYg3Fs=",
        },
    })
    nix_settings = registry.to_nix_config()
"""

import base64
import binascii
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, List, Optional, Set, Tuple, Union
from urllib.parse import urlparse

from flakeplan.core.exceptions import IncompleteTrustEntryError, TrustError

logger = logging.getLogger(__name__)

VALID_SCHEMES = {"https", "http", "s3", "ssh", "file"}
ED25519_KEY_BYTES = 32


@dataclass(frozen=True)
class TrustDescriptor:
    """
    Trusted substituter entry.

    Attributes:
        name: Cache identifier from the declaration
        url: Substituter URL
        public_key: Signing key in ``<key-name>:<base64>`` form
        trusted: Whether the substituter may be used without further approval

    Example:
        >>> TrustDescriptor(
        ...     name="crane",
        ...     url="https://crane.cachix.org",
        ...     public_key="crane.cachix.org-1:8Scfpmn9w+hGdXH/Q9tTLiYAE/2dnJYRJP7kl80GuRk=",
        ... )
    """

    name: str
    url: str
    public_key: str
    trusted: bool = True

    def __post_init__(self):
        if not self.url:
            raise IncompleteTrustEntryError(self.name, "substituter URL")
        if not self.public_key:
            raise IncompleteTrustEntryError(self.name, "public key")

        parsed = urlparse(self.url)
        if parsed.scheme not in VALID_SCHEMES:
            raise TrustError(
                f"Trust entry '{self.name}': invalid substituter scheme "
                f"'{parsed.scheme}'. Must be one of: {', '.join(sorted(VALID_SCHEMES))}"
            )
        if parsed.scheme != "file" and not parsed.netloc:
            raise TrustError(f"Trust entry '{self.name}': substituter URL has no host: {self.url}")

        validate_public_key(self.name, self.public_key)

    @property
    def host(self) -> str:
        return urlparse(self.url).hostname or ""

    @property
    def key_name(self) -> str:
        return self.public_key.split(":", 1)[0]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "url": self.url,
            "public_key": self.public_key,
            "trusted": self.trusted,
        }


def validate_public_key(cache: str, public_key: str) -> None:
    """
    Check that a key has the ``<key-name>:<base64 ed25519 key>`` form.

    Raises:
        TrustError: If the key is malformed
    """
    if ":" not in public_key:
        raise TrustError(f"Trust entry '{cache}': public key must be '<name>:<base64>'")

    key_name, encoded = public_key.split(":", 1)
    if not key_name:
        raise TrustError(f"Trust entry '{cache}': public key has an empty name")

    try:
        raw = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as e:
        raise TrustError(f"Trust entry '{cache}': public key is not valid base64") from e

    if len(raw) != ED25519_KEY_BYTES:
        raise TrustError(
            f"Trust entry '{cache}': public key must decode to {ED25519_KEY_BYTES} "
            f"bytes, got {len(raw)}"
        )


class TrustRegistry(Mapping):
    """
    Immutable, validated set of trusted substituters.

    Entries keep declaration order. The registry is handed unchanged to the
    cache client that fetches artifacts by cache key.
    """

    def __init__(self, entries: Iterable[TrustDescriptor] = ()):
        self._entries: Dict[str, TrustDescriptor] = {}
        for entry in entries:
            self._entries[entry.name] = entry

    def __getitem__(self, name: str) -> TrustDescriptor:
        return self._entries[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"TrustRegistry({list(self._entries)!r})"

    def substituters(self) -> List[str]:
        """URLs of every registered substituter."""
        return [entry.url for entry in self._entries.values()]

    def trusted_substituters(self) -> List[str]:
        """URLs of substituters marked trusted."""
        return [entry.url for entry in self._entries.values() if entry.trusted]

    def trusted_public_keys(self) -> List[str]:
        """Public keys accepted for signature verification."""
        return [entry.public_key for entry in self._entries.values()]

    def lookup(self, url: str) -> Optional[TrustDescriptor]:
        """Find the entry for a substituter URL (trailing slash ignored)."""
        wanted = url.rstrip("/")
        for entry in self._entries.values():
            if entry.url.rstrip("/") == wanted:
                return entry
        return None

    def to_nix_config(self) -> Dict[str, List[str]]:
        """Render the registry as nix.conf-style ``extra-*`` settings."""
        return {
            "extra-substituters": self.substituters(),
            "extra-trusted-substituters": self.trusted_substituters(),
            "extra-trusted-public-keys": self.trusted_public_keys(),
        }

    def to_dict(self) -> Dict[str, Dict[str, Any]]:
        return {name: entry.to_dict() for name, entry in self._entries.items()}


TrustEntries = Union[Mapping, Iterable[Mapping]]


def register(entries: TrustEntries) -> TrustRegistry:
    """
    Validate trust entries and build a registry.

    Args:
        entries: Mapping of cache id to ``{url, public_key, trusted}``, or an
            iterable of such mappings each carrying ``name``. ``key`` is
            accepted as an alias of ``public_key``.

    Returns:
        TrustRegistry in declaration order

    Raises:
        IncompleteTrustEntryError: If an entry lacks its URL or key
        TrustError: If a URL or key is malformed, or a URL or name is
            registered twice
    """
    descriptors: List[TrustDescriptor] = []
    seen_urls: Dict[str, str] = {}
    seen_names: Set[str] = set()

    for name, raw in _iter_entries(entries):
        if name in seen_names:
            raise TrustError(f"Trust entry '{name}' is declared more than once")
        seen_names.add(name)
        descriptor = _build_descriptor(name, raw)

        normalized = descriptor.url.rstrip("/")
        if normalized in seen_urls:
            raise TrustError(
                f"Substituter {descriptor.url} is registered by both "
                f"'{seen_urls[normalized]}' and '{name}'"
            )
        seen_urls[normalized] = name

        if descriptor.host and not descriptor.key_name.startswith(descriptor.host):
            logger.warning(
                f"Trust entry '{name}': key name '{descriptor.key_name}' does not "
                f"match substituter host '{descriptor.host}'"
            )

        descriptors.append(descriptor)

    logger.debug(f"Registered {len(descriptors)} trusted substituter(s)")
    return TrustRegistry(descriptors)


def pair_nix_config(settings: Mapping) -> Dict[str, Dict[str, Any]]:
    """
    Turn nix.conf-style lists into trust entries.

    ``extra-substituters`` are paired with ``extra-trusted-public-keys`` by
    host: a key named ``<host>-N`` belongs to the substituter on ``<host>``.
    Substituters listed in ``extra-trusted-substituters`` are marked trusted.

    Raises:
        IncompleteTrustEntryError: If a substituter has no key or a key has no
            substituter
    """
    substituters = _string_list(settings, "extra-substituters")
    trusted = {url.rstrip("/") for url in _string_list(settings, "extra-trusted-substituters")}
    keys = _string_list(settings, "extra-trusted-public-keys")

    # Trusted-only substituters count as substituters too
    for url in _string_list(settings, "extra-trusted-substituters"):
        if url.rstrip("/") not in {s.rstrip("/") for s in substituters}:
            substituters.append(url)

    remaining_keys = list(keys)
    entries: Dict[str, Dict[str, Any]] = {}
    for url in substituters:
        host = urlparse(url).hostname or url
        key = _take_key_for_host(remaining_keys, host)
        if key is None:
            raise IncompleteTrustEntryError(host, "public key")
        entries[host] = {
            "url": url,
            "public_key": key,
            "trusted": url.rstrip("/") in trusted,
        }

    if remaining_keys:
        orphan = remaining_keys[0].split(":", 1)[0]
        raise IncompleteTrustEntryError(orphan, "substituter URL")

    return entries


def _take_key_for_host(keys: List[str], host: str) -> Optional[str]:
    for index, key in enumerate(keys):
        key_name = key.split(":", 1)[0]
        if key_name == host or key_name.startswith(f"{host}-"):
            return keys.pop(index)
    return None


def _string_list(settings: Mapping, key: str) -> List[str]:
    value = settings.get(key)
    if value is None:
        return []
    if isinstance(value, str):
        value = value.split()
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise TrustError(f"{key} must be a list of strings")
    return list(value)


def _iter_entries(entries: TrustEntries) -> Iterator[Tuple[str, Mapping]]:
    if isinstance(entries, Mapping):
        for name, raw in entries.items():
            yield str(name), raw
        return

    for index, raw in enumerate(entries):
        if not isinstance(raw, Mapping):
            raise TrustError(f"Trust entry #{index} must be a mapping")
        yield str(raw.get("name") or f"cache[{index}]"), raw


def _build_descriptor(name: str, raw: Any) -> TrustDescriptor:
    if isinstance(raw, TrustDescriptor):
        return raw
    if not isinstance(raw, Mapping):
        raise TrustError(f"Trust entry '{name}' must be a mapping")

    unknown = set(raw) - {"name", "url", "public_key", "key", "trusted"}
    if unknown:
        raise TrustError(f"Trust entry '{name}': unknown field(s) {', '.join(sorted(unknown))}")

    trusted = raw.get("trusted", True)
    if not isinstance(trusted, bool):
        raise TrustError(f"Trust entry '{name}': 'trusted' must be a boolean")

    return TrustDescriptor(
        name=name,
        url=raw.get("url") or "",
        public_key=raw.get("public_key") or raw.get("key") or "",
        trusted=trusted,
    )


__all__ = [
    "TrustDescriptor",
    "TrustRegistry",
    "pair_nix_config",
    "register",
    "validate_public_key",
]
