"""Version Index: (file name, version number) -> ordered chunk list plus metadata."""

import sqlite3
from datetime import datetime, timezone
from typing import Iterator, List, Optional, Sequence

from catalog.database import Database
from catalog.repositories.version_repository import VersionRepository
from common.constants import LATEST
from common.exceptions import ConflictError, NotFoundError
from common.logging_config import get_logger
from common.types import FileEntry, Version, VersionInfo, VersionSelector

logger = get_logger(__name__)


def parse_version_selector(value: str) -> VersionSelector:
    """
    Parse user input into a version selector.

    Args:
        value: "latest" (any case) or a positive integer

    Raises:
        ValueError: If the value is neither
    """
    if value.lower() == LATEST:
        return LATEST
    try:
        number = int(value)
    except ValueError:
        raise ValueError(f"Invalid version: {value!r} (expected a number or 'latest')")
    if number < 1:
        raise ValueError(f"Invalid version: {value!r} (versions start at 1)")
    return number


class VersionIndex:
    """
    Owns the File Name Registry and the version-to-chunk-list mapping.

    The index only records fingerprints; payloads and reference counts are
    owned by the Chunk Store.
    """

    def __init__(self, database: Database):
        self.database = database
        self.version_repo = VersionRepository()

    def next_version_number(self, file_name: str) -> int:
        """Current latest version plus one; 1 for unseen file names."""
        with self.database.connect() as conn:
            latest = self.version_repo.get_latest_version(conn, file_name)
        return 1 if latest is None else latest + 1

    def latest_version_number(self, file_name: str) -> Optional[int]:
        with self.database.connect() as conn:
            return self.version_repo.get_latest_version(conn, file_name)

    def commit_version(
        self,
        file_name: str,
        version_number: int,
        whole_file_fingerprint: str,
        total_size: int,
        ordered_chunk_list: Sequence[str],
    ) -> Version:
        """
        Atomically persist a version record and advance the latest pointer.

        Args:
            file_name: Logical file name
            version_number: Must equal the current latest version plus one
            whole_file_fingerprint: Fingerprint of the complete file
            total_size: File size in bytes
            ordered_chunk_list: Chunk fingerprints in file order

        Returns:
            The committed Version

        Raises:
            ConflictError: If version_number is not latest + 1
            NotFoundError: If a listed chunk is not registered in the Chunk Store
        """
        created_at = datetime.now(timezone.utc)

        with self.database.transaction() as conn:
            latest = self.version_repo.get_latest_version(conn, file_name)
            expected = 1 if latest is None else latest + 1
            if version_number != expected:
                raise ConflictError(
                    f"Cannot commit version {version_number} of '{file_name}': "
                    f"expected version {expected}"
                )
            try:
                self.version_repo.insert_version(
                    conn,
                    file_name,
                    version_number,
                    whole_file_fingerprint,
                    total_size,
                    ordered_chunk_list,
                    created_at,
                )
            except sqlite3.IntegrityError as e:
                if "FOREIGN KEY" in str(e):
                    raise NotFoundError(
                        f"Version {version_number} of '{file_name}' cites unregistered chunks"
                    ) from e
                raise ConflictError(
                    f"Version {version_number} of '{file_name}' already exists"
                ) from e

        logger.info(
            f"Committed version {version_number} of '{file_name}' "
            f"[size={total_size}, chunks={len(ordered_chunk_list)}]"
        )
        return Version(
            file_name=file_name,
            version_number=version_number,
            whole_file_fingerprint=whole_file_fingerprint,
            total_size=total_size,
            chunk_count=len(ordered_chunk_list),
            created_at=created_at,
            ordered_chunk_list=tuple(ordered_chunk_list),
        )

    def get_version(self, file_name: str, selector: VersionSelector = LATEST) -> Version:
        """
        Resolve a version record with its chunk list.

        Args:
            file_name: Logical file name
            selector: Version number, or "latest" in any case

        Raises:
            NotFoundError: If the file name or version does not exist, or the
                selector names no version
        """
        if isinstance(selector, str):
            try:
                selector = parse_version_selector(selector)
            except ValueError as e:
                raise NotFoundError(f"{e} for '{file_name}'") from e

        with self.database.connect() as conn:
            if selector == LATEST:
                # Pruning never moves the registry pointer; resolve to the newest survivor.
                version_number = self.version_repo.get_newest_live_version(conn, file_name)
                if version_number is None:
                    raise NotFoundError(f"File not found: {file_name}")
            else:
                version_number = int(selector)

            version = self.version_repo.get_version(conn, file_name, version_number)

        if version is None:
            raise NotFoundError(f"Version {version_number} of '{file_name}' not found")
        return version

    def list_versions(self, file_name: str) -> Iterator[VersionInfo]:
        """
        Lazily yield version metadata ordered by version number ascending.
        Unknown file names yield nothing.
        """
        with self.database.connect() as conn:
            yield from self.version_repo.iter_versions(conn, file_name)

    def list_files(self) -> List[FileEntry]:
        with self.database.connect() as conn:
            return self.version_repo.list_files(conn)
