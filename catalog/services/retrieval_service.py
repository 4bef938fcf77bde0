"""Retrieval service: rebuild stored versions from their chunk lists."""

import os
import tempfile
from pathlib import Path
from typing import Iterator, Optional

from catalog.version_index import VersionIndex
from chunkstore.checksum_validator import IncrementalFingerprint
from chunkstore.chunk_store import ChunkStore
from common.constants import DEFAULT_HASH_ALGORITHM, LATEST
from common.exceptions import IntegrityError, NotFoundError, StorageIOError
from common.logging_config import get_logger
from common.types import Version, VersionSelector

logger = get_logger(__name__)


class RetrievalService:
    def __init__(
        self,
        chunk_store: ChunkStore,
        version_index: VersionIndex,
        hash_algorithm: str = DEFAULT_HASH_ALGORITHM,
    ):
        self.chunk_store = chunk_store
        self.version_index = version_index
        self.hash_algorithm = hash_algorithm

    def iter_chunks(self, version: Version) -> Iterator[bytes]:
        """
        Yield chunk payloads of `version` in order.

        A chunk cited by a committed version but missing from the store means
        the index and payload area are out of sync; it is never skipped.

        Raises:
            NotFoundError: If a referenced chunk is missing
            IntegrityError: If a payload does not match its entry
        """
        for position, fingerprint in enumerate(version.ordered_chunk_list):
            try:
                yield self.chunk_store.get(fingerprint)
            except NotFoundError:
                logger.error(
                    f"Version {version.version_number} of '{version.file_name}' references "
                    f"missing chunk {fingerprint} at position {position}"
                )
                raise

    def _reconstruct(self, version: Version, sink) -> None:
        whole_file = IncrementalFingerprint(self.hash_algorithm)
        for payload in self.iter_chunks(version):
            whole_file.update(payload)
            sink(payload)

        if whole_file.size != version.total_size:
            logger.error(
                f"Size mismatch rebuilding '{version.file_name}' v{version.version_number}: "
                f"expected={version.total_size}, actual={whole_file.size}"
            )
            raise IntegrityError(
                f"Reconstructed size {whole_file.size} does not match recorded "
                f"size {version.total_size} for '{version.file_name}' v{version.version_number}"
            )
        if whole_file.finalize() != version.whole_file_fingerprint:
            logger.error(
                f"Fingerprint mismatch rebuilding '{version.file_name}' v{version.version_number}"
            )
            raise IntegrityError(
                f"Reconstructed content of '{version.file_name}' v{version.version_number} "
                f"does not match its whole-file fingerprint"
            )

    def retrieve(self, file_name: str, selector: VersionSelector = LATEST) -> bytes:
        """
        Reconstruct a version in memory.

        Args:
            file_name: Logical file name
            selector: Version number or "latest"

        Returns:
            The exact bytes that were pushed

        Raises:
            NotFoundError: If the version or a referenced chunk is missing
            IntegrityError: If the reconstruction fails verification
        """
        version = self.version_index.get_version(file_name, selector)
        parts = []
        self._reconstruct(version, parts.append)
        logger.info(
            f"Retrieved '{file_name}' v{version.version_number} ({version.total_size} bytes)"
        )
        return b"".join(parts)

    def export(
        self,
        file_name: str,
        selector: VersionSelector = LATEST,
        destination: Optional[Path] = None,
    ) -> Path:
        """
        Reconstruct a version into a file.

        The data is written to a temporary file next to `destination` and
        renamed into place only after verification, so a failed export
        leaves no partial output.

        Args:
            file_name: Logical file name
            selector: Version number or "latest"
            destination: Output path, defaults to `file_name` in the current directory

        Returns:
            Path of the written file
        """
        version = self.version_index.get_version(file_name, selector)
        destination = Path(destination) if destination is not None else Path(Path(file_name).name)
        if destination.is_dir():
            destination = destination / Path(file_name).name

        temp_name = None
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                dir=str(destination.parent),
                prefix=f".{destination.name}.",
                suffix=".partial",
                delete=False,
            ) as temp_file:
                temp_name = temp_file.name
                self._reconstruct(version, temp_file.write)
                temp_file.flush()
                os.fsync(temp_file.fileno())
            os.replace(temp_name, destination)
            temp_name = None
        except StorageIOError:
            raise
        except OSError as e:
            raise StorageIOError(f"Failed to export '{file_name}' to {destination}: {e}") from e
        finally:
            if temp_name is not None:
                Path(temp_name).unlink(missing_ok=True)

        logger.info(
            f"Exported '{file_name}' v{version.version_number} to {destination} "
            f"({version.total_size} bytes)"
        )
        return destination
