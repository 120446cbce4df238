"""
Re-encrypt stored values with the current default cipher and key.

Ciphertexts describe themselves: decryption uses the module and key tags
embedded in each value, never the version recorded next to it. The recorded
version is only used to skip records that are already current.

Running a migration twice is harmless. A record that is already current is
either skipped or re-encrypted to an equivalent ciphertext.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Tuple

from .errors import StorageError
from .registry import CipherRegistry

logger = logging.getLogger(__name__)


@dataclass
class EncryptedRecord:
    """Stored ciphertext and the version recorded when it was written."""

    record_id: Any
    ciphertext: bytes
    version: Optional[bytes] = None


@dataclass
class MigrationResult:
    """Result of a migration run."""

    scanned: int = 0
    migrated: int = 0
    skipped: int = 0

    def __str__(self) -> str:
        return f"{self.scanned} scanned, {self.migrated} migrated, {self.skipped} skipped"


def migrate_value(registry: CipherRegistry, ciphertext: bytes) -> Tuple[bytes, bytes]:
    """
    Re-encrypt one value with the registry's current default.

    Args:
        registry: CipherRegistry holding both the old and the new cipher/key
        ciphertext: Value produced by any configured cipher and key

    Returns:
        Tuple of (new_ciphertext, new_version)

    Raises:
        CipherNotFoundError, KeyNotFoundError, ...: Decryption errors propagate
    """
    plaintext = registry.decrypt(ciphertext)
    return registry.encrypt(plaintext), registry.version()


# =============================================================================
# Record Stores
# =============================================================================


class RecordStore(ABC):
    """Abstract storage of encrypted records."""

    @abstractmethod
    def iter_records(self) -> Iterator[EncryptedRecord]:
        """Iterate over all records."""
        ...

    @abstractmethod
    def update_record(self, record_id: Any, ciphertext: bytes, version: bytes) -> None:
        """Persist a migrated ciphertext and its new version."""
        ...


class InMemoryRecordStore(RecordStore):
    """Dict-backed record store for tests and small data sets."""

    def __init__(self, records: Optional[List[EncryptedRecord]] = None) -> None:
        self._records: Dict[Any, EncryptedRecord] = {}
        for record in records or []:
            self._records[record.record_id] = record

    def add(self, record: EncryptedRecord) -> None:
        self._records[record.record_id] = record

    def get(self, record_id: Any) -> EncryptedRecord:
        record = self._records.get(record_id)
        if record is None:
            raise StorageError(f"Record not found: {record_id}")
        return record

    def iter_records(self) -> Iterator[EncryptedRecord]:
        # Snapshot so updates during iteration are safe
        return iter(list(self._records.values()))

    def update_record(self, record_id: Any, ciphertext: bytes, version: bytes) -> None:
        record = self.get(record_id)
        record.ciphertext = ciphertext
        record.version = version

    def __len__(self) -> int:
        return len(self._records)


def migrate_records(
    registry: CipherRegistry,
    store: RecordStore,
    skip_current: bool = True,
) -> MigrationResult:
    """
    Migrate every record in a store to the current default cipher and key.

    Args:
        registry: CipherRegistry with all ciphers and keys still in use
        store: RecordStore to read and update
        skip_current: Skip records whose recorded version is already current

    Returns:
        MigrationResult with counts

    Raises:
        EnvelopeError: The first failure stops the run
    """
    result = MigrationResult()
    current_version = registry.version()

    for record in store.iter_records():
        result.scanned += 1

        if skip_current and record.version == current_version:
            result.skipped += 1
            continue

        ciphertext, version = migrate_value(registry, record.ciphertext)
        store.update_record(record.record_id, ciphertext, version)
        result.migrated += 1

    logger.info("Migration complete: %s", result)
    return result
