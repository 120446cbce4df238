"""
PostgreSQL-backed migration of encrypted columns.

This module provides:
- PostgresRecordStore: Reads and updates one encrypted column of a table
- migrate_table: Re-encrypts every stale row in batches

Table layout expected (names are configurable):

    CREATE TABLE secrets (
        id              BIGSERIAL PRIMARY KEY,
        value           BYTEA NOT NULL,   -- registry.encrypt(...)
        value_version   BYTEA             -- registry.version() at write time
    );

Migration strategy:
1. Select rows whose version differs from registry.version(), by id order
2. Decrypt each with the tags embedded in its ciphertext
3. Re-encrypt with the current default and write value + version back
4. Continue after the last id seen (keyset pagination)
"""

from __future__ import annotations

import logging
from typing import Any, List, Optional, Tuple

import asyncpg

from .errors import StorageError
from .migration import EncryptedRecord, MigrationResult, migrate_value
from .registry import CipherRegistry

logger = logging.getLogger(__name__)


def quote_ident(name: str) -> str:
    """Quote a SQL identifier."""
    if not name:
        raise StorageError("SQL identifier must not be empty")
    return '"' + name.replace('"', '""') + '"'


class PostgresRecordStore:
    """
    PostgreSQL storage for one encrypted column.
    """

    def __init__(
        self,
        pool: asyncpg.Pool,
        table: str,
        id_column: str = "id",
        value_column: str = "value",
        version_column: str = "value_version",
    ) -> None:
        """
        Initialize PostgreSQL record store.

        Args:
            pool: asyncpg connection pool
            table: Table holding the encrypted column
            id_column: Orderable primary key column
            value_column: BYTEA column with ciphertexts
            version_column: BYTEA column with recorded versions
        """
        self._pool = pool
        self._table = quote_ident(table)
        self._id = quote_ident(id_column)
        self._value = quote_ident(value_column)
        self._version = quote_ident(version_column)

    @property
    def pool(self) -> asyncpg.Pool:
        """Get the connection pool."""
        return self._pool

    async def fetch_stale_batch(
        self,
        current_version: bytes,
        after_id: Optional[Any] = None,
        batch_size: int = 100,
    ) -> List[EncryptedRecord]:
        """
        Get rows whose recorded version is not current.

        Args:
            current_version: registry.version()
            after_id: Only rows with a greater id (None for the first batch)
            batch_size: Maximum number of rows to return

        Returns:
            List of EncryptedRecord ordered by id

        Raises:
            StorageError: If batch_size is not positive, or the query fails
        """
        _check_batch_size(batch_size)
        query = f"""
            SELECT {self._id} AS record_id, {self._value} AS ciphertext,
                   {self._version} AS version
            FROM {self._table}
            WHERE {self._version} IS DISTINCT FROM $1
              AND {self._value} IS NOT NULL
        """
        args: List[Any] = [current_version]
        if after_id is not None:
            query += f" AND {self._id} > $2"
            args.append(after_id)
        query += f" ORDER BY {self._id} LIMIT {int(batch_size)}"

        try:
            rows = await self._pool.fetch(query, *args)
            return [self._row_to_record(row) for row in rows]
        except asyncpg.PostgresError as e:
            raise StorageError(f"Failed to fetch records: {e}")

    async def update_record(self, record_id: Any, ciphertext: bytes, version: bytes) -> None:
        """
        Persist a migrated ciphertext and its version.

        Args:
            record_id: Row id
            ciphertext: New ciphertext
            version: registry.version() used to produce it
        """
        query = f"""
            UPDATE {self._table}
            SET {self._value} = $2, {self._version} = $3
            WHERE {self._id} = $1
        """
        try:
            await self._pool.execute(query, record_id, ciphertext, version)
        except asyncpg.PostgresError as e:
            raise StorageError(f"Failed to update record {record_id}: {e}")

    async def get_version_stats(self) -> List[Tuple[Optional[bytes], int]]:
        """
        Count rows per recorded version.

        Returns:
            List of (version, count) tuples
        """
        query = f"""
            SELECT {self._version} AS version, COUNT(*) AS count
            FROM {self._table}
            GROUP BY {self._version}
            ORDER BY count DESC
        """
        try:
            rows = await self._pool.fetch(query)
            return [
                (bytes(row["version"]) if row["version"] is not None else None, row["count"])
                for row in rows
            ]
        except asyncpg.PostgresError as e:
            raise StorageError(f"Failed to get version stats: {e}")

    @staticmethod
    def _row_to_record(row: asyncpg.Record) -> EncryptedRecord:
        """Convert database row to EncryptedRecord."""
        version = row["version"]
        return EncryptedRecord(
            record_id=row["record_id"],
            ciphertext=bytes(row["ciphertext"]),
            version=bytes(version) if version is not None else None,
        )


async def migrate_table(
    registry: CipherRegistry,
    store: PostgresRecordStore,
    batch_size: int = 100,
) -> MigrationResult:
    """
    Migrate every stale row of a table to the current default cipher and key.

    Rows already at registry.version() are never selected, so re-running
    after an interruption only touches what is left.

    Args:
        registry: CipherRegistry with all ciphers and keys still in use
        store: PostgresRecordStore for the table
        batch_size: Rows per batch

    Returns:
        MigrationResult (skipped is always 0, current rows are filtered in SQL)

    Raises:
        StorageError: If batch_size is not positive, or a query fails
    """
    _check_batch_size(batch_size)
    result = MigrationResult()
    current_version = registry.version()
    after_id: Optional[Any] = None

    while True:
        batch = await store.fetch_stale_batch(current_version, after_id, batch_size)
        if not batch:
            break

        for record in batch:
            result.scanned += 1
            ciphertext, version = migrate_value(registry, record.ciphertext)
            await store.update_record(record.record_id, ciphertext, version)
            result.migrated += 1

        after_id = batch[-1].record_id
        logger.info("Migrated batch up to id %s (%s)", after_id, result)

    return result


def _check_batch_size(batch_size: int) -> None:
    if isinstance(batch_size, bool) or not isinstance(batch_size, int) or batch_size <= 0:
        raise StorageError(f"Batch size must be a positive integer, got {batch_size!r}")
