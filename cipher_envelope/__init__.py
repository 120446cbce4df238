"""
Cipher Envelope Library

Encrypt and decrypt values while several ciphers and several keys are valid at
the same time, so keys and ciphers can be rotated without downtime.

Quick Start
-----------
```python
import base64
from cipher_envelope import load_registry

# Build once at startup, then pass the registry to every call site
registry = load_registry({
    "ciphers": [
        {
            "tag": b"AES",
            "default": True,
            "keys": [
                {"tag": 1, "key": {"source": "CIPHER_KEY_V1"}, "default": False},
                {"tag": 2, "key": {"source": "CIPHER_KEY_V2"}, "default": True},
            ],
        },
    ],
}, dotenv_path=".env")

ciphertext = registry.encrypt(b"Sensitive data")   # b"AES" + b"\\x02" + iv + body
plaintext = registry.decrypt(ciphertext)
version = registry.version()                        # b"AES\\x02", store next to the value
```

Key Features
------------
- **Self-describing ciphertexts**: Module tag + key tag + IV + body
- **Key Rotation**: Add a new default key, old ciphertexts keep decrypting
- **Cipher Migration**: Several ciphers dispatched by module tag prefix
- **Environment Keys**: Base64 keys re-read on every use, no restart needed
- **Migration**: Re-encrypt stored values in memory or in PostgreSQL
- **No authentication**: AES-CTR output is invertible, not tamper-proof
"""

__version__ = "0.1.0"

# =============================================================================
# Crypto Exports
# =============================================================================

from .crypto import (
    HEADER_SIZE,
    IV_SIZE,
    KEY_TAG_SIZE,
    VALID_KEY_SIZES,
    AesCtrStream,
    KeyedPayload,
    SecureKey,
    generate_random_bytes,
)

# =============================================================================
# Error Exports
# =============================================================================

from .errors import (
    CipherNotFoundError,
    ConfigError,
    CryptoError,
    EnvelopeError,
    ErrorKind,
    InvalidKeyEncodingError,
    InvalidKeySizeError,
    KeyNotFoundError,
    MalformedCiphertextError,
    MissingKeySourceError,
    NoDefaultCipherError,
    NoDefaultKeyError,
    StorageError,
)

# =============================================================================
# Keys, Ciphers and Registry Exports (Primary API)
# =============================================================================

from .keys import KeyEntry, KeyRegistry, LiteralKey, SystemKey, resolve_key_material
from .ciphers import AesCtrCipher, CipherProvider
from .registry import CipherEntry, CipherRegistry
from .config import BUILTIN_CIPHERS, load_registry, parse_keys

# =============================================================================
# Migration Exports
# =============================================================================

from .migration import (
    EncryptedRecord,
    InMemoryRecordStore,
    MigrationResult,
    RecordStore,
    migrate_records,
    migrate_value,
)
from .postgres import PostgresRecordStore, migrate_table

# =============================================================================
# Public API
# =============================================================================

__all__ = [
    # Version
    "__version__",
    # Crypto
    "HEADER_SIZE",
    "IV_SIZE",
    "KEY_TAG_SIZE",
    "VALID_KEY_SIZES",
    "AesCtrStream",
    "KeyedPayload",
    "SecureKey",
    "generate_random_bytes",
    # Errors
    "EnvelopeError",
    "ErrorKind",
    "CipherNotFoundError",
    "KeyNotFoundError",
    "NoDefaultCipherError",
    "NoDefaultKeyError",
    "MalformedCiphertextError",
    "MissingKeySourceError",
    "InvalidKeyEncodingError",
    "InvalidKeySizeError",
    "ConfigError",
    "CryptoError",
    "StorageError",
    # Keys
    "KeyEntry",
    "KeyRegistry",
    "LiteralKey",
    "SystemKey",
    "resolve_key_material",
    # Ciphers
    "CipherProvider",
    "AesCtrCipher",
    # Registry (Primary API)
    "CipherEntry",
    "CipherRegistry",
    "load_registry",
    "parse_keys",
    "BUILTIN_CIPHERS",
    # Migration
    "EncryptedRecord",
    "InMemoryRecordStore",
    "MigrationResult",
    "RecordStore",
    "migrate_records",
    "migrate_value",
    "PostgresRecordStore",
    "migrate_table",
]
