"""Version repository: File Name Registry and Version records."""

import sqlite3
from collections import Counter
from datetime import datetime
from typing import Iterator, List, Optional, Sequence

from common.logging_config import get_logger
from common.types import FileEntry, Version, VersionInfo

logger = get_logger(__name__)

_VERSION_COLUMNS = """
    file_name, version_number, whole_file_fingerprint,
    total_size, chunk_count, created_at
"""


def _to_info(row: sqlite3.Row) -> VersionInfo:
    return VersionInfo(
        file_name=row["file_name"],
        version_number=row["version_number"],
        whole_file_fingerprint=row["whole_file_fingerprint"],
        total_size=row["total_size"],
        chunk_count=row["chunk_count"],
        created_at=datetime.fromisoformat(row["created_at"]),
    )


class VersionRepository:
    """
    Data access for the `files`, `versions` and `version_chunks` tables.
    Every method runs on the connection it is given.
    """

    @staticmethod
    def get_latest_version(conn: sqlite3.Connection, file_name: str) -> Optional[int]:
        row = conn.execute(
            "SELECT latest_version FROM files WHERE file_name = ?", (file_name,)
        ).fetchone()
        if row is None:
            return None
        return row["latest_version"]

    @staticmethod
    def get_newest_live_version(conn: sqlite3.Connection, file_name: str) -> Optional[int]:
        """Highest version number that has not been pruned."""
        row = conn.execute(
            "SELECT MAX(version_number) AS newest FROM versions WHERE file_name = ?",
            (file_name,)
        ).fetchone()
        return row["newest"]

    @staticmethod
    def insert_version(
        conn: sqlite3.Connection,
        file_name: str,
        version_number: int,
        whole_file_fingerprint: str,
        total_size: int,
        ordered_chunk_list: Sequence[str],
        created_at: datetime,
    ) -> None:
        timestamp = created_at.isoformat()

        conn.execute(
            """
            INSERT INTO files (file_name, latest_version, created_at, updated_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(file_name) DO UPDATE SET
                latest_version = excluded.latest_version,
                updated_at = excluded.updated_at
            """,
            (file_name, version_number, timestamp, timestamp)
        )

        conn.execute(
            """
            INSERT INTO versions (
                file_name, version_number, whole_file_fingerprint,
                total_size, chunk_count, created_at
            )
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                file_name,
                version_number,
                whole_file_fingerprint,
                total_size,
                len(ordered_chunk_list),
                timestamp,
            )
        )

        conn.executemany(
            """
            INSERT INTO version_chunks (file_name, version_number, position, fingerprint)
            VALUES (?, ?, ?, ?)
            """,
            [
                (file_name, version_number, position, fingerprint)
                for position, fingerprint in enumerate(ordered_chunk_list)
            ]
        )

    @staticmethod
    def get_version_info(
        conn: sqlite3.Connection, file_name: str, version_number: int
    ) -> Optional[VersionInfo]:
        row = conn.execute(
            f"""
            SELECT {_VERSION_COLUMNS}
            FROM versions
            WHERE file_name = ? AND version_number = ?
            """,
            (file_name, version_number)
        ).fetchone()
        if row is None:
            return None
        return _to_info(row)

    @staticmethod
    def get_chunk_list(
        conn: sqlite3.Connection, file_name: str, version_number: int
    ) -> List[str]:
        rows = conn.execute(
            """
            SELECT fingerprint
            FROM version_chunks
            WHERE file_name = ? AND version_number = ?
            ORDER BY position
            """,
            (file_name, version_number)
        ).fetchall()
        return [row["fingerprint"] for row in rows]

    @staticmethod
    def get_version(
        conn: sqlite3.Connection, file_name: str, version_number: int
    ) -> Optional[Version]:
        info = VersionRepository.get_version_info(conn, file_name, version_number)
        if info is None:
            return None
        chunk_list = VersionRepository.get_chunk_list(conn, file_name, version_number)
        return Version(
            file_name=info.file_name,
            version_number=info.version_number,
            whole_file_fingerprint=info.whole_file_fingerprint,
            total_size=info.total_size,
            chunk_count=info.chunk_count,
            created_at=info.created_at,
            ordered_chunk_list=tuple(chunk_list),
        )

    @staticmethod
    def iter_versions(
        conn: sqlite3.Connection, file_name: Optional[str] = None
    ) -> Iterator[VersionInfo]:
        if file_name is None:
            cursor = conn.execute(
                f"""
                SELECT {_VERSION_COLUMNS}
                FROM versions
                ORDER BY file_name, version_number
                """
            )
        else:
            cursor = conn.execute(
                f"""
                SELECT {_VERSION_COLUMNS}
                FROM versions
                WHERE file_name = ?
                ORDER BY version_number
                """,
                (file_name,)
            )
        for row in cursor:
            yield _to_info(row)

    @staticmethod
    def list_files(conn: sqlite3.Connection) -> List[FileEntry]:
        rows = conn.execute(
            """
            SELECT file_name, latest_version, updated_at
            FROM files
            ORDER BY file_name
            """
        ).fetchall()
        return [
            FileEntry(
                file_name=row["file_name"],
                latest_version=row["latest_version"],
                updated_at=datetime.fromisoformat(row["updated_at"]),
            )
            for row in rows
        ]

    @staticmethod
    def delete_version(
        conn: sqlite3.Connection, file_name: str, version_number: int
    ) -> Counter:
        """
        Delete one version and its chunk list.

        Returns:
            Counter of fingerprint -> occurrences in the deleted chunk list
        """
        chunk_list = VersionRepository.get_chunk_list(conn, file_name, version_number)
        conn.execute(
            "DELETE FROM versions WHERE file_name = ? AND version_number = ?",
            (file_name, version_number)
        )
        logger.debug(
            f"Deleted version record [file_name={file_name}, version={version_number}, "
            f"chunks={len(chunk_list)}]"
        )
        return Counter(chunk_list)

    @staticmethod
    def reference_counts(conn: sqlite3.Connection) -> dict:
        """
        Count chunk references from live versions, keyed by fingerprint.
        """
        rows = conn.execute(
            """
            SELECT fingerprint, COUNT(*) AS occurrences
            FROM version_chunks
            GROUP BY fingerprint
            """
        ).fetchall()
        return {row["fingerprint"]: row["occurrences"] for row in rows}

    @staticmethod
    def totals(conn: sqlite3.Connection) -> dict:
        row = conn.execute(
            """
            SELECT (SELECT COUNT(*) FROM files) AS file_count,
                   COUNT(*) AS version_count,
                   COALESCE(SUM(total_size), 0) AS logical_bytes
            FROM versions
            """
        ).fetchone()
        return {
            "file_count": row["file_count"],
            "version_count": row["version_count"],
            "logical_bytes": row["logical_bytes"],
        }
