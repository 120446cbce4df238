"""
Cipher registry: the encrypt/decrypt/version surface used by applications.

Every ciphertext starts with the module tag of the cipher that produced it,
so decrypt() alone can route it to the right cipher:

    +------------+---------------+
    | Module Tag | Cipher output |
    +------------+---------------+

Dispatch on decrypt takes the first entry, in registration order, whose tag
is a prefix of the ciphertext. It is not a longest-match: with tags "A" and
"AB" registered in that order, "AB..." goes to the "A" cipher.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Iterator, Optional, Tuple

from .ciphers import CipherProvider
from .crypto import split_module_tag
from .errors import CipherNotFoundError, ConfigError, NoDefaultCipherError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CipherEntry:
    """Configured cipher with its module tag and default flag."""

    tag: bytes
    provider: CipherProvider
    default: bool = False

    def __post_init__(self) -> None:
        if not isinstance(self.tag, bytes) or not self.tag:
            raise ConfigError(f"Module tag must be non-empty bytes, got {self.tag!r}")


class CipherRegistry:
    """
    Ordered cipher entries, immutable after construction.

    Safe to share between threads: no call mutates registry state.
    """

    __slots__ = ("_entries",)

    def __init__(self, entries: Iterable[CipherEntry]) -> None:
        self._entries: Tuple[CipherEntry, ...] = tuple(entries)

    def encrypt(self, plaintext: bytes) -> bytes:
        """
        Encrypt with the default cipher and prepend its module tag.

        Raises:
            NoDefaultCipherError: If no cipher is flagged default
        """
        entry = self.default_entry()
        return entry.tag + entry.provider.encrypt(plaintext)

    def decrypt(self, ciphertext: bytes) -> bytes:
        """
        Decrypt with the cipher whose module tag prefixes the ciphertext.

        Raises:
            CipherNotFoundError: If no configured tag prefixes the ciphertext
        """
        for entry in self._entries:
            remainder = split_module_tag(entry.tag, ciphertext)
            if remainder is not None:
                logger.debug("Dispatching ciphertext to module tag %s", entry.tag.hex())
                return entry.provider.decrypt(remainder)

        raise CipherNotFoundError(
            f"No cipher found to decrypt ciphertext starting with {bytes(ciphertext[:8]).hex()}"
        )

    def version(self) -> bytes:
        """
        Module tag of the default cipher followed by that cipher's version.

        Store this next to each encrypted value to find records that still
        need migrating after a cipher or key change.
        """
        entry = self.default_entry()
        return entry.tag + entry.provider.version()

    def default_entry(self) -> CipherEntry:
        """
        First entry flagged default.

        Raises:
            NoDefaultCipherError: If no entry is flagged default
        """
        for entry in self._entries:
            if entry.default:
                return entry
        raise NoDefaultCipherError("No cipher is flagged as default")

    def find_entry(self, ciphertext: bytes) -> Optional[CipherEntry]:
        """Entry decrypt() would dispatch to, or None."""
        for entry in self._entries:
            if ciphertext.startswith(entry.tag):
                return entry
        return None

    def is_current(self, recorded_version: Optional[bytes]) -> bool:
        """True if a recorded version matches what encrypt() produces now."""
        return recorded_version is not None and bytes(recorded_version) == self.version()

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[CipherEntry]:
        return iter(self._entries)

    def __repr__(self) -> str:
        return f"CipherRegistry(tags={[e.tag for e in self._entries]})"
