"""
Exception classes for cipher envelope operations.

Every exception carries a ``kind`` so callers can branch on the failure
without parsing messages:

    try:
        registry.decrypt(blob)
    except EnvelopeError as e:
        if e.kind is ErrorKind.KEY_NOT_FOUND:
            ...
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Inspectable failure category."""

    CIPHER_NOT_FOUND = "CipherNotFound"
    KEY_NOT_FOUND = "KeyNotFound"
    NO_DEFAULT_CIPHER = "NoDefaultCipher"
    NO_DEFAULT_KEY = "NoDefaultKey"
    MALFORMED_CIPHERTEXT = "MalformedCiphertext"
    MISSING_KEY_SOURCE = "MissingKeySource"
    INVALID_KEY_ENCODING = "InvalidKeyEncoding"
    INVALID_KEY_SIZE = "InvalidKeySize"
    CONFIG = "Config"
    CRYPTO = "Crypto"
    STORAGE = "Storage"

    def __str__(self) -> str:
        return self.value


class EnvelopeError(Exception):
    """Base exception for all cipher envelope operations."""

    kind: ErrorKind = ErrorKind.CRYPTO


class CipherNotFoundError(EnvelopeError):
    """No configured module tag prefixes the ciphertext."""

    kind = ErrorKind.CIPHER_NOT_FOUND


class KeyNotFoundError(EnvelopeError):
    """Key tag has no matching key entry."""

    kind = ErrorKind.KEY_NOT_FOUND


class NoDefaultCipherError(EnvelopeError):
    """Encryption requested but no cipher entry is flagged default."""

    kind = ErrorKind.NO_DEFAULT_CIPHER


class NoDefaultKeyError(EnvelopeError):
    """Encryption requested but no key entry is flagged default."""

    kind = ErrorKind.NO_DEFAULT_KEY


class MalformedCiphertextError(EnvelopeError):
    """Ciphertext is shorter than the minimum header length."""

    kind = ErrorKind.MALFORMED_CIPHERTEXT


class MissingKeySourceError(EnvelopeError):
    """Environment-sourced key material is absent or empty."""

    kind = ErrorKind.MISSING_KEY_SOURCE


class InvalidKeyEncodingError(EnvelopeError):
    """Environment-sourced key material is not valid base64."""

    kind = ErrorKind.INVALID_KEY_ENCODING


class InvalidKeySizeError(EnvelopeError):
    """Resolved key is not 128, 192 or 256 bits."""

    kind = ErrorKind.INVALID_KEY_SIZE


class ConfigError(EnvelopeError):
    """Configuration error."""

    kind = ErrorKind.CONFIG


class CryptoError(EnvelopeError):
    """Cryptographic primitive failed."""

    kind = ErrorKind.CRYPTO


class StorageError(EnvelopeError):
    """Storage backend error during migration."""

    kind = ErrorKind.STORAGE
