"""
Cryptographic primitives and framing for AES-CTR envelopes.

This module provides:
- SecureKey: Secure key wrapper with automatic zeroization
- KeyedPayload: Key tag, IV and ciphertext body of one encryption
- AesCtrStream: AES in CTR (stream) mode, same call for both directions
- split_module_tag: Prefix test used for cipher dispatch

Wire layout produced by a cipher registry:

    +---------------------------------------------------------+----------------------+
    |                         HEADER                          |         BODY         |
    +----------------------+------------------+---------------+----------------------+
    | Module Tag (n bytes) | Key Tag (1 byte) | IV (16 bytes) | Ciphertext (n bytes) |
    +----------------------+------------------+---------------+----------------------+
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from typing import Optional

from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from .errors import CryptoError, InvalidKeySizeError, MalformedCiphertextError

# Cryptographic constants
IV_SIZE: int = 16  # 128 bits (AES block size)
KEY_TAG_SIZE: int = 1
HEADER_SIZE: int = KEY_TAG_SIZE + IV_SIZE
VALID_KEY_SIZES: tuple = (16, 24, 32)  # AES-128, AES-192, AES-256


class SecureKey:
    """
    Secure key wrapper with automatic memory cleanup on deletion.

    Uses bytearray internally for mutable zeroing in __del__.
    Note: Python's garbage collector doesn't guarantee immediate cleanup,
    so this is best-effort zeroization.
    """

    __slots__ = ("_bytes",)

    def __init__(self, key_bytes: bytes | bytearray) -> None:
        if not isinstance(key_bytes, (bytes, bytearray)):
            raise CryptoError("Key must be bytes or bytearray")
        self._bytes = bytearray(key_bytes)

    @classmethod
    def generate(cls, size: int = 32) -> SecureKey:
        """Generate a cryptographically secure random key (default AES-256)."""
        validate_key_size(size)
        return cls(secrets.token_bytes(size))

    def as_bytes(self) -> bytes:
        """Return key as immutable bytes."""
        return bytes(self._bytes)

    def __len__(self) -> int:
        return len(self._bytes)

    def __repr__(self) -> str:
        """Redacted representation to prevent accidental key disclosure."""
        return "SecureKey([REDACTED])"

    def __del__(self) -> None:
        """Zero memory on deletion (best-effort)."""
        if hasattr(self, "_bytes"):
            for i in range(len(self._bytes)):
                self._bytes[i] = 0


def validate_key_size(size: int) -> None:
    """
    Check that a key length is usable by AES.

    Raises:
        InvalidKeySizeError: If size is not 16, 24 or 32 bytes
    """
    if size not in VALID_KEY_SIZES:
        raise InvalidKeySizeError(
            f"Invalid key size: expected one of {VALID_KEY_SIZES} bytes, got {size}"
        )


@dataclass(frozen=True)
class KeyedPayload:
    """
    One AES-CTR encryption as framed by the cipher: key_tag || iv || body.

    The body has the same length as the plaintext (no padding).
    """

    key_tag: bytes  # 1 byte
    iv: bytes  # 16 bytes
    body: bytes

    def to_bytes(self) -> bytes:
        if len(self.key_tag) != KEY_TAG_SIZE:
            raise CryptoError(
                f"Invalid key tag size: expected {KEY_TAG_SIZE}, got {len(self.key_tag)}"
            )
        if len(self.iv) != IV_SIZE:
            raise CryptoError(f"Invalid IV size: expected {IV_SIZE}, got {len(self.iv)}")
        return self.key_tag + self.iv + self.body

    @classmethod
    def from_bytes(cls, blob: bytes) -> KeyedPayload:
        """
        Parse a framed ciphertext.

        Args:
            blob: Cipher output without the module tag

        Returns:
            KeyedPayload instance

        Raises:
            MalformedCiphertextError: If blob is shorter than the header
        """
        if len(blob) < HEADER_SIZE:
            raise MalformedCiphertextError(
                f"Ciphertext too small: expected at least {HEADER_SIZE} bytes, got {len(blob)}"
            )
        return cls(
            key_tag=blob[:KEY_TAG_SIZE],
            iv=blob[KEY_TAG_SIZE:HEADER_SIZE],
            body=blob[HEADER_SIZE:],
        )


class AesCtrStream:
    """
    AES in CTR mode.

    CTR is its own inverse: running the keystream with the same key and IV
    over a ciphertext yields the plaintext, so one transform serves both
    directions. A key/IV pair must never be used for two different messages.
    """

    @staticmethod
    def transform(key: SecureKey, iv: bytes, data: bytes) -> bytes:
        """
        XOR data with the AES-CTR keystream for (key, iv).

        Args:
            key: 16, 24 or 32-byte AES key
            iv: 16-byte initial counter block
            data: Plaintext or ciphertext

        Returns:
            Output of the same length as data

        Raises:
            InvalidKeySizeError: If key size is invalid
            CryptoError: If the IV is invalid or the primitive fails
        """
        validate_key_size(len(key))

        if len(iv) != IV_SIZE:
            raise CryptoError(f"Invalid IV size: expected {IV_SIZE}, got {len(iv)}")

        try:
            context = Cipher(algorithms.AES(key.as_bytes()), modes.CTR(iv)).encryptor()
            return context.update(data) + context.finalize()
        except (TypeError, ValueError) as e:
            raise CryptoError(f"AES-CTR error: {e}")


def split_module_tag(tag: bytes, ciphertext: bytes) -> Optional[bytes]:
    """Return the bytes after ``tag`` if ciphertext starts with it, else None."""
    if ciphertext.startswith(tag):
        return ciphertext[len(tag):]
    return None


def generate_iv() -> bytes:
    """Fresh random IV from the OS CSPRNG."""
    return generate_random_bytes(IV_SIZE)


def generate_random_bytes(length: int) -> bytes:
    """
    Generate cryptographically secure random bytes.

    Args:
        length: Number of bytes to generate

    Returns:
        Random bytes of specified length
    """
    return secrets.token_bytes(length)
