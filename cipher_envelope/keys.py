"""
Key registry for a single cipher.

This module provides:
- LiteralKey: Key bytes held in configuration
- SystemKey: Base64 key read from an environment variable on every use
- KeyEntry: Tagged key with a default flag
- KeyRegistry: Ordered, immutable collection of key entries

Rotation:
1. Append a new entry flagged default, unflag the old one
2. New encryptions use the new key immediately
3. Old entries stay so their ciphertexts remain decryptable
4. Never remove an entry while stored ciphertexts still carry its tag
"""

from __future__ import annotations

import base64
import binascii
import logging
import os
from dataclasses import dataclass
from typing import Any, Iterable, Iterator, Optional, Tuple, Union

from .crypto import KEY_TAG_SIZE, SecureKey, validate_key_size
from .errors import (
    ConfigError,
    InvalidKeyEncodingError,
    KeyNotFoundError,
    MissingKeySourceError,
    NoDefaultKeyError,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LiteralKey:
    """Raw key bytes."""

    value: bytes

    def __repr__(self) -> str:
        return "LiteralKey([REDACTED])"


@dataclass(frozen=True)
class SystemKey:
    """Key stored base64-encoded in an environment variable."""

    env_var: str


KeyMaterial = Union[LiteralKey, SystemKey]


def parse_key_tag(value: Any) -> bytes:
    """Accept an int 0-255 or a single byte."""
    if isinstance(value, bool):
        raise ConfigError(f"Invalid key tag: {value!r}")
    if isinstance(value, int):
        if not 0 <= value <= 255:
            raise ConfigError(f"Key tag out of range 0-255: {value}")
        return bytes([value])
    if isinstance(value, (bytes, bytearray)) and len(value) == KEY_TAG_SIZE:
        return bytes(value)
    raise ConfigError(f"Key tag must be a single byte, got {value!r}")


def resolve_key_material(material: KeyMaterial) -> SecureKey:
    """
    Turn configured key material into a usable key.

    SystemKey values are re-read from the environment on every call so an
    externally rotated secret takes effect without a restart.

    Raises:
        MissingKeySourceError: If the environment variable is unset or empty
        InvalidKeyEncodingError: If its value is not valid base64
        InvalidKeySizeError: If the key is not 16, 24 or 32 bytes
    """
    if isinstance(material, SystemKey):
        raw = _read_system_key(material.env_var)
    else:
        raw = material.value

    validate_key_size(len(raw))
    return SecureKey(raw)


def _read_system_key(env_var: str) -> bytes:
    encoded = os.environ.get(env_var)
    if not encoded:
        raise MissingKeySourceError(
            f"Expected env variable {env_var} to define a key, but it is empty"
        )
    try:
        return base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError):
        raise InvalidKeyEncodingError(
            f"Expected env variable {env_var} to be a valid base64 string"
        )


@dataclass(frozen=True)
class KeyEntry:
    """Key tag (one byte, embedded in every ciphertext) and its material."""

    tag: bytes
    material: KeyMaterial
    default: bool = False

    def __post_init__(self) -> None:
        if not isinstance(self.tag, bytes) or len(self.tag) != KEY_TAG_SIZE:
            raise ConfigError(
                f"Key tag must be exactly {KEY_TAG_SIZE} byte, got {self.tag!r}"
            )


class KeyRegistry:
    """
    Ordered key entries for one cipher.

    Lookups return the first match in registration order. Duplicate tags or
    several default entries are not rejected; the earliest entry wins.
    """

    __slots__ = ("_entries",)

    def __init__(self, entries: Iterable[KeyEntry]) -> None:
        self._entries: Tuple[KeyEntry, ...] = tuple(entries)

    def find(self, tag: Union[bytes, int]) -> Optional[KeyEntry]:
        """Get the first entry with this tag (a byte or an int 0-255), or None."""
        try:
            tag = parse_key_tag(tag)
        except ConfigError:
            return None
        for entry in self._entries:
            if entry.tag == tag:
                return entry
        return None

    def get(self, tag: Union[bytes, int]) -> KeyEntry:
        """
        Get the first entry with this tag.

        Raises:
            KeyNotFoundError: If no entry carries the tag
        """
        entry = self.find(tag)
        if entry is None:
            raise KeyNotFoundError(f"No key found for tag {tag!r}")
        return entry

    def default(self) -> KeyEntry:
        """
        Get the first entry flagged default.

        Raises:
            NoDefaultKeyError: If no entry is flagged default
        """
        for entry in self._entries:
            if entry.default:
                return entry
        raise NoDefaultKeyError("No key is flagged as default")

    def resolve(self, entry: KeyEntry) -> SecureKey:
        """Resolve an entry's key material (never cached)."""
        logger.debug("Resolving key material for key tag %s", entry.tag.hex())
        return resolve_key_material(entry.material)

    def tags(self) -> Tuple[bytes, ...]:
        return tuple(entry.tag for entry in self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[KeyEntry]:
        return iter(self._entries)

    def __repr__(self) -> str:
        return f"KeyRegistry(tags={[t.hex() for t in self.tags()]})"
