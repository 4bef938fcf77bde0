"""Database schema and connection management for SQLite."""

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Generator

from common.exceptions import StorageIOError
from common.logging_config import get_logger

logger = get_logger(__name__)

BUSY_TIMEOUT_SECONDS = 30.0


class Database:
    """
    SQLite metadata store holding the File Name Registry, Version records and
    Chunk Store reference counts.

    Every mutating operation runs inside `transaction()`, which takes the
    write lock up front (`BEGIN IMMEDIATE`) and commits or rolls back as a
    unit.
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    def init_database(self) -> None:
        """
        Initialize database and create tables if they don't exist.
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)

        with self.transaction() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS chunks (
                    fingerprint TEXT PRIMARY KEY,
                    length INTEGER NOT NULL,
                    reference_count INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    CHECK (reference_count >= 0)
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS files (
                    file_name TEXT PRIMARY KEY,
                    latest_version INTEGER NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS versions (
                    file_name TEXT NOT NULL,
                    version_number INTEGER NOT NULL,
                    whole_file_fingerprint TEXT NOT NULL,
                    total_size INTEGER NOT NULL,
                    chunk_count INTEGER NOT NULL,
                    created_at TEXT NOT NULL,
                    PRIMARY KEY(file_name, version_number),
                    FOREIGN KEY(file_name) REFERENCES files(file_name)
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS version_chunks (
                    file_name TEXT NOT NULL,
                    version_number INTEGER NOT NULL,
                    position INTEGER NOT NULL,
                    fingerprint TEXT NOT NULL,
                    PRIMARY KEY(file_name, version_number, position),
                    FOREIGN KEY(file_name, version_number)
                        REFERENCES versions(file_name, version_number) ON DELETE CASCADE,
                    FOREIGN KEY(fingerprint) REFERENCES chunks(fingerprint)
                )
            """)

            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_version_chunks_fingerprint
                ON version_chunks(fingerprint)
            """)

            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_chunks_unreferenced
                ON chunks(reference_count) WHERE reference_count = 0
            """)

        logger.debug(f"Database ready at {self.path}")

    def _open(self) -> sqlite3.Connection:
        try:
            conn = sqlite3.connect(
                str(self.path), timeout=BUSY_TIMEOUT_SECONDS, isolation_level=None
            )
        except sqlite3.Error as e:
            raise StorageIOError(f"Cannot open metadata store {self.path}: {e}") from e
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        conn.execute("PRAGMA synchronous = FULL")
        return conn

    @contextmanager
    def connect(self) -> Generator[sqlite3.Connection, None, None]:
        """
        Context manager for autocommit connections, used for reads.
        """
        conn = self._open()
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Generator[sqlite3.Connection, None, None]:
        """
        Context manager for one atomic write transaction.

        Commits on normal exit; rolls back and re-raises on any exception.
        """
        conn = self._open()
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.rollback()
                raise
            conn.commit()
        except sqlite3.OperationalError as e:
            raise StorageIOError(f"Metadata store operation failed: {e}") from e
        finally:
            conn.close()
