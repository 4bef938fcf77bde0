"""Manages physical chunk payload files on disk: atomic write, read, delete, scan."""

import os
import tempfile
from pathlib import Path
from typing import Iterator, List, Optional

from common.constants import OBJECTS_DIR_NAME, SCRATCH_DIR_NAME
from common.exceptions import NotFoundError, StorageIOError
from common.logging_config import get_logger

logger = get_logger(__name__)

SHARD_WIDTH = 2


def shard(fingerprint: str, width: int = SHARD_WIDTH) -> List[str]:
    """
    Split a fingerprint into a prefix directory and the remainder.

    Args:
        fingerprint: Hex digest
        width: Length of the prefix directory name

    Returns:
        Path parts, e.g. ["ab", "cdef..."]
    """
    if len(fingerprint) <= width:
        raise ValueError("fingerprint must be longer than the shard width")
    return [fingerprint[:width], fingerprint[width:]]


class ChunkStorage:
    """
    Payload area of the Chunk Store.

    Payloads live at `<workdir>/objects/<aa>/<rest>`. Writes go to a scratch
    file in `<workdir>/tmp` first, are flushed and fsynced, then renamed over
    the final path, so a torn write is never visible under a fingerprint.
    """

    def __init__(self, workdir: Path, fsync: bool = True):
        """
        Initialize the payload area.

        Args:
            workdir: Store working directory
            fsync: Flush payloads and directory entries to stable storage
        """
        self.objects_dir = Path(workdir) / OBJECTS_DIR_NAME
        self.scratch_dir = Path(workdir) / SCRATCH_DIR_NAME
        self.fsync = fsync

    def ensure_directories(self) -> None:
        """Ensure payload and scratch directories exist."""
        self.objects_dir.mkdir(parents=True, exist_ok=True)
        self.scratch_dir.mkdir(parents=True, exist_ok=True)

    def get_chunk_path(self, fingerprint: str) -> Path:
        """
        Get file path for a chunk payload.

        Args:
            fingerprint: Chunk fingerprint

        Returns:
            Path object for payload file
        """
        return self.objects_dir.joinpath(*shard(fingerprint))

    def write_chunk(self, fingerprint: str, data: bytes) -> Path:
        """
        Durably write chunk payload to disk under its fingerprint.

        Args:
            fingerprint: Chunk fingerprint
            data: Raw chunk payload

        Returns:
            Final payload path

        Raises:
            StorageIOError: If write operation fails
        """
        filepath = self.get_chunk_path(fingerprint)
        temp_name: Optional[str] = None

        try:
            self.ensure_directories()
            filepath.parent.mkdir(parents=True, exist_ok=True)

            with tempfile.NamedTemporaryFile(
                dir=str(self.scratch_dir), prefix="chunk-", delete=False
            ) as temp_file:
                temp_name = temp_file.name
                temp_file.write(data)
                temp_file.flush()
                if self.fsync:
                    os.fsync(temp_file.fileno())

            os.replace(temp_name, filepath)
            temp_name = None

            if self.fsync:
                self._fsync_directory(filepath.parent)
        except OSError as e:
            raise StorageIOError(f"Failed to write chunk {fingerprint}: {e}") from e
        finally:
            if temp_name is not None:
                Path(temp_name).unlink(missing_ok=True)

        logger.debug(f"Wrote chunk payload {fingerprint} ({len(data)} bytes)")
        return filepath

    def read_chunk(self, fingerprint: str) -> bytes:
        """
        Read entire chunk payload from disk.

        Raises:
            NotFoundError: If payload does not exist
            StorageIOError: If read operation fails
        """
        filepath = self.get_chunk_path(fingerprint)
        try:
            return filepath.read_bytes()
        except FileNotFoundError as e:
            raise NotFoundError(f"Chunk payload missing: {fingerprint}") from e
        except OSError as e:
            raise StorageIOError(f"Failed to read chunk {fingerprint}: {e}") from e

    def delete_chunk(self, fingerprint: str) -> bool:
        """
        Delete chunk payload from disk.

        Returns:
            True if file was deleted, False if it didn't exist
        """
        filepath = self.get_chunk_path(fingerprint)
        try:
            filepath.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageIOError(f"Failed to delete chunk {fingerprint}: {e}") from e

        try:
            filepath.parent.rmdir()
        except OSError:
            # Shard directory still holds other payloads.
            pass
        return True

    def chunk_exists(self, fingerprint: str) -> bool:
        """Check if chunk payload exists on disk."""
        return self.get_chunk_path(fingerprint).is_file()

    def get_chunk_size(self, fingerprint: str) -> Optional[int]:
        """
        Get size of chunk payload in bytes.

        Returns:
            Size in bytes, or None if payload doesn't exist
        """
        try:
            return self.get_chunk_path(fingerprint).stat().st_size
        except FileNotFoundError:
            return None

    def iter_fingerprints(self) -> Iterator[str]:
        """Yield the fingerprint of every payload file in the objects directory."""
        if not self.objects_dir.exists():
            return
        for shard_dir in sorted(self.objects_dir.iterdir()):
            if not shard_dir.is_dir():
                continue
            for filepath in sorted(shard_dir.iterdir()):
                if filepath.is_file():
                    yield shard_dir.name + filepath.name

    def clear_scratch(self) -> int:
        """
        Remove leftover scratch files from interrupted writes.

        Returns:
            Number of files removed
        """
        if not self.scratch_dir.exists():
            return 0
        removed = 0
        for filepath in self.scratch_dir.iterdir():
            if filepath.is_file():
                filepath.unlink(missing_ok=True)
                removed += 1
        if removed:
            logger.info(f"Removed {removed} leftover scratch files")
        return removed

    @staticmethod
    def _fsync_directory(path: Path) -> None:
        if os.name == "nt":
            return
        fd = os.open(str(path), os.O_RDONLY)
        try:
            os.fsync(fd)
        finally:
            os.close(fd)
