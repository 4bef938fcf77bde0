"""Chunk Store: unique chunk payloads addressed by fingerprint, with reference counts."""

import sqlite3
from typing import List, Optional

from catalog.database import Database
from catalog.repositories.chunk_repository import ChunkRepository
from chunkstore.checksum_validator import verify_fingerprint
from chunkstore.chunk_storage import ChunkStorage
from common.constants import DEFAULT_HASH_ALGORITHM
from common.exceptions import IntegrityError, NotFoundError
from common.logging_config import get_logger
from common.types import ChunkRecord, GarbageCollectionReport, PutResult

logger = get_logger(__name__)


class ChunkStore:
    """
    Durable repository of unique chunk payloads.

    Payload bytes live in the payload area (`ChunkStorage`); fingerprint,
    length and reference count live in the metadata store. A payload is
    always durably written before its metadata row is committed, so a crash
    in between leaves at worst an orphan payload, never a row without bytes.

    Payloads are only removed by `collect_garbage`, never by `release`.
    """

    def __init__(
        self,
        storage: ChunkStorage,
        database: Database,
        hash_algorithm: str = DEFAULT_HASH_ALGORITHM,
    ):
        self.storage = storage
        self.database = database
        self.hash_algorithm = hash_algorithm
        self.chunk_repo = ChunkRepository()

    def has(self, fingerprint: str) -> bool:
        """Check whether a chunk is registered in the store."""
        with self.database.connect() as conn:
            return self.chunk_repo.exists(conn, fingerprint)

    def lookup(self, fingerprint: str) -> Optional[ChunkRecord]:
        """Return the chunk entry, or None if the fingerprint is unknown."""
        with self.database.connect() as conn:
            return self.chunk_repo.get(conn, fingerprint)

    def put(self, fingerprint: str, payload: bytes) -> PutResult:
        """
        Persist a chunk payload if absent, otherwise add one reference.

        Args:
            fingerprint: Fingerprint of `payload`
            payload: Raw chunk bytes

        Returns:
            PutResult telling whether bytes were written

        Raises:
            StorageIOError: If the payload or metadata cannot be written
            IntegrityError: If the fingerprint is registered with another length
        """
        existing = self._add_reference_if_present(fingerprint, len(payload))
        if existing is not None:
            return existing

        self.storage.write_chunk(fingerprint, payload)

        with self.database.transaction() as conn:
            try:
                record = self.chunk_repo.insert(conn, fingerprint, len(payload), reference_count=1)
                return PutResult(fingerprint, record.length, True, record.reference_count)
            except sqlite3.IntegrityError:
                # Registered by another writer after our existence check.
                pass

        existing = self._add_reference_if_present(fingerprint, len(payload))
        if existing is None:
            raise IntegrityError(f"Chunk {fingerprint} vanished while being registered")
        return PutResult(fingerprint, existing.length, True, existing.reference_count)

    def _add_reference_if_present(self, fingerprint: str, length: int) -> Optional[PutResult]:
        with self.database.transaction() as conn:
            record = self.chunk_repo.get(conn, fingerprint)
            if record is None:
                return None
            if record.length != length:
                logger.error(
                    f"Length mismatch for chunk {fingerprint}: stored={record.length}, incoming={length}"
                )
                raise IntegrityError(
                    f"Chunk {fingerprint} is registered with length {record.length}, "
                    f"incoming payload has {length} bytes"
                )
            refs = self.chunk_repo.increment(conn, fingerprint)
        logger.debug(f"Reused chunk {fingerprint} [refs={refs}]")
        return PutResult(fingerprint, length, False, refs)

    def acquire(self, fingerprint: str, count: int = 1) -> int:
        """
        Add `count` references to an existing chunk.

        Returns:
            New reference count

        Raises:
            NotFoundError: If the fingerprint is unknown
        """
        with self.database.transaction() as conn:
            return self.chunk_repo.increment(conn, fingerprint, count)

    def get(self, fingerprint: str, verify: bool = False) -> bytes:
        """
        Return the payload bytes of a chunk.

        Args:
            fingerprint: Chunk fingerprint
            verify: Re-fingerprint the payload before returning it

        Raises:
            NotFoundError: If the fingerprint or its payload is missing
            IntegrityError: If the payload does not match its entry
        """
        record = self.lookup(fingerprint)
        if record is None:
            raise NotFoundError(f"Chunk not found: {fingerprint}")

        payload = self.storage.read_chunk(fingerprint)

        if len(payload) != record.length:
            logger.error(
                f"Payload length mismatch for chunk {fingerprint}: "
                f"expected={record.length}, actual={len(payload)}"
            )
            raise IntegrityError(
                f"Chunk {fingerprint} has {len(payload)} bytes on disk, expected {record.length}"
            )
        if verify and not verify_fingerprint(payload, fingerprint, self.hash_algorithm):
            logger.error(f"Fingerprint mismatch for chunk {fingerprint}")
            raise IntegrityError(f"Chunk {fingerprint} payload does not match its fingerprint")

        return payload

    def release(self, fingerprint: str, count: int = 1) -> int:
        """
        Drop `count` references. Payload removal is deferred to
        `collect_garbage`.

        Returns:
            New reference count

        Raises:
            NotFoundError: If the fingerprint is unknown
            IntegrityError: If more references are released than held
        """
        with self.database.transaction() as conn:
            refs = self.chunk_repo.decrement(conn, fingerprint, count)
        logger.debug(f"Released chunk {fingerprint} [refs={refs}]")
        return refs

    def unreferenced(self) -> List[ChunkRecord]:
        """Chunks with a reference count of zero, eligible for garbage collection."""
        with self.database.connect() as conn:
            return self.chunk_repo.list_unreferenced(conn)

    def missing_payloads(self) -> List[str]:
        """Registered fingerprints whose payload file is absent."""
        with self.database.connect() as conn:
            return [
                record.fingerprint
                for record in self.chunk_repo.iter_all(conn)
                if not self.storage.chunk_exists(record.fingerprint)
            ]

    def orphan_payloads(self) -> List[str]:
        """Payload files that have no registered entry."""
        with self.database.connect() as conn:
            return [
                fingerprint
                for fingerprint in self.storage.iter_fingerprints()
                if not self.chunk_repo.exists(conn, fingerprint)
            ]

    def collect_garbage(self, dry_run: bool = False) -> GarbageCollectionReport:
        """
        Remove zero-reference chunks and orphan payloads.

        Entries are deleted from the metadata store before their payload, so
        an interrupted sweep leaves orphans (swept next time), never entries
        without payload. Must not run concurrently with a push in the same
        workdir, since a push's fresh payload is an orphan until registered.

        Args:
            dry_run: Only report what would be removed

        Returns:
            GarbageCollectionReport
        """
        candidates = self.unreferenced()
        orphans = self.orphan_payloads()

        if dry_run:
            reclaimable = sum(record.length for record in candidates)
            reclaimable += sum(self.storage.get_chunk_size(fp) or 0 for fp in orphans)
            return GarbageCollectionReport(
                removed_chunks=[record.fingerprint for record in candidates],
                removed_orphans=orphans,
                reclaimed_bytes=reclaimable,
                dry_run=True,
            )

        removed_chunks = []
        reclaimed = 0

        for record in candidates:
            try:
                with self.database.transaction() as conn:
                    deleted = self.chunk_repo.delete_unreferenced(conn, record.fingerprint)
            except sqlite3.IntegrityError:
                logger.error(
                    f"Chunk {record.fingerprint} has no references but is still cited "
                    f"by a version, keeping it"
                )
                continue
            if not deleted:
                logger.debug(f"Chunk {record.fingerprint} was referenced again, skipping")
                continue
            self.storage.delete_chunk(record.fingerprint)
            removed_chunks.append(record.fingerprint)
            reclaimed += record.length

        removed_orphans = []
        for fingerprint in orphans:
            size = self.storage.get_chunk_size(fingerprint) or 0
            if self.storage.delete_chunk(fingerprint):
                removed_orphans.append(fingerprint)
                reclaimed += size

        self.storage.clear_scratch()

        logger.info(
            f"Garbage collection removed {len(removed_chunks)} chunks and "
            f"{len(removed_orphans)} orphan payloads ({reclaimed} bytes)"
        )
        return GarbageCollectionReport(
            removed_chunks=removed_chunks,
            removed_orphans=removed_orphans,
            reclaimed_bytes=reclaimed,
        )
