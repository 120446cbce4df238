"""
Pytest configuration and fixtures for cipher envelope tests.
"""

from __future__ import annotations

import base64
import os
from pathlib import Path
from typing import AsyncGenerator

import asyncpg
import pytest
from dotenv import load_dotenv

from cipher_envelope import (
    AesCtrCipher,
    CipherEntry,
    CipherRegistry,
    KeyEntry,
    KeyRegistry,
    LiteralKey,
)

KEY_1 = bytes(range(32))
KEY_2 = bytes(range(32, 64))
KEY_128 = bytes(range(16))


@pytest.fixture
def key_registry() -> KeyRegistry:
    """Two keys, tag 2 is the default."""
    return KeyRegistry(
        [
            KeyEntry(tag=b"\x01", material=LiteralKey(KEY_1), default=False),
            KeyEntry(tag=b"\x02", material=LiteralKey(KEY_2), default=True),
        ]
    )


@pytest.fixture
def aes_cipher(key_registry: KeyRegistry) -> AesCtrCipher:
    return AesCtrCipher(key_registry)


@pytest.fixture
def registry(aes_cipher: AesCtrCipher) -> CipherRegistry:
    """Single AES-CTR cipher tagged b"AES"."""
    return CipherRegistry([CipherEntry(tag=b"AES", provider=aes_cipher, default=True)])


@pytest.fixture
def env_key(monkeypatch: pytest.MonkeyPatch) -> str:
    """Environment variable holding a base64 AES-256 key."""
    name = "CIPHER_ENVELOPE_TEST_KEY"
    monkeypatch.setenv(name, base64.b64encode(KEY_1).decode("ascii"))
    return name


@pytest.fixture
async def pg_pool() -> AsyncGenerator[asyncpg.Pool, None]:
    """Create a PostgreSQL connection pool for testing."""
    # Load environment from project root
    env_path = Path(__file__).parent.parent / ".env"
    load_dotenv(env_path)

    database_url = os.environ.get("DATABASE_URL")
    if not database_url:
        pytest.skip("DATABASE_URL not set, skipping PostgreSQL tests")

    pool = await asyncpg.create_pool(database_url)
    if pool is None:
        pytest.skip("Failed to create PostgreSQL connection pool")

    await pool.execute(
        """
        CREATE TABLE IF NOT EXISTS cipher_envelope_test_secrets (
            id BIGSERIAL PRIMARY KEY,
            value BYTEA NOT NULL,
            value_version BYTEA
        )
        """
    )
    await pool.execute("TRUNCATE TABLE cipher_envelope_test_secrets")

    yield pool

    await pool.execute("DROP TABLE IF EXISTS cipher_envelope_test_secrets")
    await pool.close()
