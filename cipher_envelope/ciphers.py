"""
Cipher providers.

This module provides:
- CipherProvider: Abstract interface every cipher implements
- AesCtrCipher: AES in CTR mode with multiple tagged keys
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional, Union

from .crypto import AesCtrStream, KeyedPayload, generate_iv
from .keys import KeyRegistry


class CipherProvider(ABC):
    """
    Abstract cipher interface.

    Providers only see their own output; the registry adds and strips the
    module tag.
    """

    @abstractmethod
    def encrypt(self, plaintext: bytes) -> bytes:
        """Encrypt plaintext."""
        ...

    @abstractmethod
    def decrypt(self, ciphertext: bytes) -> bytes:
        """Decrypt ciphertext produced by encrypt()."""
        ...

    @abstractmethod
    def version(self) -> bytes:
        """Identify the key generation new ciphertexts are produced with."""
        ...


class AesCtrCipher(CipherProvider):
    """
    AES encryption in CTR (stream) mode with key rotation.

    Output format:

        +----------------------------------+----------------------+
        |              HEADER              |         BODY         |
        +------------------+---------------+----------------------+
        | Key Tag (1 byte) | IV (16 bytes) | Ciphertext (n bytes) |
        +------------------+---------------+----------------------+

    A random IV is generated for every encryption, so the same plaintext
    never encrypts to the same bytes twice.
    """

    def __init__(self, keys: KeyRegistry) -> None:
        """
        Initialize cipher with its keys.

        Args:
            keys: KeyRegistry holding every key this cipher may decrypt with
        """
        self._keys = keys

    @property
    def keys(self) -> KeyRegistry:
        return self._keys

    def encrypt(
        self, plaintext: Union[bytes, str], key_tag: Optional[Union[bytes, int]] = None
    ) -> bytes:
        """
        Encrypt plaintext with the given key, or the default key.

        Args:
            plaintext: Bytes to encrypt (str is UTF-8 encoded)
            key_tag: Optional tag of the key to use, as one byte or an int 0-255

        Returns:
            key_tag || iv || ciphertext

        Raises:
            KeyNotFoundError: If key_tag is given but unknown
            NoDefaultKeyError: If key_tag is omitted and no key is default
            InvalidKeySizeError: If the resolved key is not 16/24/32 bytes
        """
        data = _to_bytes(plaintext)
        entry = self._keys.get(key_tag) if key_tag is not None else self._keys.default()
        key = self._keys.resolve(entry)

        iv = generate_iv()
        body = AesCtrStream.transform(key, iv, data)

        return KeyedPayload(key_tag=entry.tag, iv=iv, body=body).to_bytes()

    def decrypt(self, ciphertext: bytes) -> bytes:
        """
        Decrypt with the key named by the embedded key tag.

        Raises:
            MalformedCiphertextError: If ciphertext is shorter than 17 bytes
            KeyNotFoundError: If the key tag is unknown
        """
        payload = KeyedPayload.from_bytes(ciphertext)
        entry = self._keys.get(payload.key_tag)
        key = self._keys.resolve(entry)

        return AesCtrStream.transform(key, payload.iv, payload.body)

    def version(self) -> bytes:
        """Tag of the current default key."""
        return self._keys.default().tag

    @staticmethod
    def key_tag_of(ciphertext: bytes) -> bytes:
        """Key tag embedded in a ciphertext produced by this cipher."""
        return KeyedPayload.from_bytes(ciphertext).key_tag

    def __repr__(self) -> str:
        return f"AesCtrCipher({self._keys!r})"


def _to_bytes(value: Union[bytes, bytearray, str]) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, str):
        return value.encode("utf-8")
    raise TypeError(f"Plaintext must be bytes or str, got {type(value).__name__}")
