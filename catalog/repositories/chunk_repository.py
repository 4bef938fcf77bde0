"""Chunk repository for reference-count bookkeeping in the metadata store."""

import sqlite3
from datetime import datetime, timezone
from typing import Iterator, List, Optional

from common.exceptions import IntegrityError, NotFoundError
from common.logging_config import get_logger
from common.types import ChunkRecord

logger = get_logger(__name__)


def _to_record(row: sqlite3.Row) -> ChunkRecord:
    return ChunkRecord(
        fingerprint=row["fingerprint"],
        length=row["length"],
        reference_count=row["reference_count"],
        created_at=datetime.fromisoformat(row["created_at"]),
    )


class ChunkRepository:
    """
    Data access for the `chunks` table. Every method runs on the connection
    it is given so callers decide the transaction boundary.
    """

    @staticmethod
    def get(conn: sqlite3.Connection, fingerprint: str) -> Optional[ChunkRecord]:
        row = conn.execute(
            """
            SELECT fingerprint, length, reference_count, created_at
            FROM chunks
            WHERE fingerprint = ?
            """,
            (fingerprint,)
        ).fetchone()

        if row is None:
            return None
        return _to_record(row)

    @staticmethod
    def exists(conn: sqlite3.Connection, fingerprint: str) -> bool:
        row = conn.execute(
            "SELECT 1 FROM chunks WHERE fingerprint = ?", (fingerprint,)
        ).fetchone()
        return row is not None

    @staticmethod
    def insert(
        conn: sqlite3.Connection,
        fingerprint: str,
        length: int,
        reference_count: int = 1,
    ) -> ChunkRecord:
        created_at = datetime.now(timezone.utc)
        conn.execute(
            """
            INSERT INTO chunks (fingerprint, length, reference_count, created_at)
            VALUES (?, ?, ?, ?)
            """,
            (fingerprint, length, reference_count, created_at.isoformat())
        )
        logger.debug(f"Registered chunk {fingerprint} [length={length}, refs={reference_count}]")
        return ChunkRecord(fingerprint, length, reference_count, created_at)

    @staticmethod
    def increment(conn: sqlite3.Connection, fingerprint: str, count: int = 1) -> int:
        """
        Add `count` references and return the new reference count.

        Raises:
            NotFoundError: If the chunk is not registered
        """
        cursor = conn.execute(
            "UPDATE chunks SET reference_count = reference_count + ? WHERE fingerprint = ?",
            (count, fingerprint)
        )
        if cursor.rowcount == 0:
            raise NotFoundError(f"Chunk not found: {fingerprint}")
        return conn.execute(
            "SELECT reference_count FROM chunks WHERE fingerprint = ?", (fingerprint,)
        ).fetchone()["reference_count"]

    @staticmethod
    def decrement(conn: sqlite3.Connection, fingerprint: str, count: int = 1) -> int:
        """
        Remove `count` references and return the new reference count.

        Raises:
            NotFoundError: If the chunk is not registered
            IntegrityError: If the count would drop below zero
        """
        record = ChunkRepository.get(conn, fingerprint)
        if record is None:
            raise NotFoundError(f"Chunk not found: {fingerprint}")
        if record.reference_count < count:
            raise IntegrityError(
                f"Reference count underflow for chunk {fingerprint}: "
                f"{record.reference_count} - {count}"
            )
        conn.execute(
            "UPDATE chunks SET reference_count = reference_count - ? WHERE fingerprint = ?",
            (count, fingerprint)
        )
        return record.reference_count - count

    @staticmethod
    def delete_unreferenced(conn: sqlite3.Connection, fingerprint: str) -> bool:
        """
        Delete the entry only if it still has zero references.

        Returns:
            True if a row was removed
        """
        cursor = conn.execute(
            "DELETE FROM chunks WHERE fingerprint = ? AND reference_count = 0",
            (fingerprint,)
        )
        return cursor.rowcount > 0

    @staticmethod
    def list_unreferenced(conn: sqlite3.Connection) -> List[ChunkRecord]:
        rows = conn.execute(
            """
            SELECT fingerprint, length, reference_count, created_at
            FROM chunks
            WHERE reference_count = 0
            ORDER BY fingerprint
            """
        ).fetchall()
        return [_to_record(row) for row in rows]

    @staticmethod
    def iter_all(conn: sqlite3.Connection) -> Iterator[ChunkRecord]:
        cursor = conn.execute(
            """
            SELECT fingerprint, length, reference_count, created_at
            FROM chunks
            ORDER BY fingerprint
            """
        )
        for row in cursor:
            yield _to_record(row)

    @staticmethod
    def totals(conn: sqlite3.Connection) -> dict:
        row = conn.execute(
            """
            SELECT COUNT(*) AS chunk_count,
                   COALESCE(SUM(length), 0) AS stored_bytes,
                   COALESCE(SUM(CASE WHEN reference_count = 0 THEN 1 ELSE 0 END), 0)
                       AS unreferenced
            FROM chunks
            """
        ).fetchone()
        return {
            "chunk_count": row["chunk_count"],
            "stored_bytes": row["stored_bytes"],
            "unreferenced": row["unreferenced"],
        }
