"""Incremental store facade wiring every component from one StoreConfig."""

from pathlib import Path
from typing import Callable, Iterator, List, Optional

from catalog.config import StoreConfig
from catalog.database import Database
from catalog.services.maintenance_service import MaintenanceService
from catalog.services.push_service import PushResult, PushService, PushState
from catalog.services.retrieval_service import RetrievalService
from catalog.version_index import VersionIndex
from chunkstore.chunk_storage import ChunkStorage
from chunkstore.chunk_store import ChunkStore
from chunkstore.chunker import Chunker
from common.constants import LATEST
from common.logging_config import get_logger
from common.types import (
    FileEntry,
    GarbageCollectionReport,
    StoreStats,
    ValidationReport,
    Version,
    VersionInfo,
    VersionSelector,
)

logger = get_logger(__name__)


class IncrementalStore:
    """
    One working directory of the incremental store.

    Each instance owns its own components, so independent stores can be
    opened side by side in one process.
    """

    def __init__(self, config: StoreConfig):
        self.config = config

        self.config.ensure_persisted()

        self.database = Database(config.database_path)
        self.database.init_database()

        self.storage = ChunkStorage(config.workdir, fsync=config.fsync)
        self.storage.ensure_directories()

        self.chunker = Chunker.from_config(config)
        self.chunk_store = ChunkStore(self.storage, self.database, config.hash_algorithm)
        self.version_index = VersionIndex(self.database)

        self.push_service = PushService(
            self.chunk_store,
            self.version_index,
            self.chunker,
            hash_algorithm=config.hash_algorithm,
            hash_workers=config.hash_workers,
        )
        self.retrieval_service = RetrievalService(
            self.chunk_store, self.version_index, config.hash_algorithm
        )
        self.maintenance_service = MaintenanceService(
            self.chunk_store, self.database, config.hash_algorithm
        )

        logger.debug(f"Opened store at {config.workdir}")

    @classmethod
    def open(cls, workdir: Optional[str] = None, **overrides) -> "IncrementalStore":
        return cls(StoreConfig.from_env(workdir, **overrides))

    def push(
        self,
        source_path: Path,
        file_name: Optional[str] = None,
        on_state: Optional[Callable[[PushState], None]] = None,
    ) -> PushResult:
        return self.push_service.push(source_path, file_name, on_state)

    def retrieve(self, file_name: str, selector: VersionSelector = LATEST) -> bytes:
        return self.retrieval_service.retrieve(file_name, selector)

    def export(
        self,
        file_name: str,
        selector: VersionSelector = LATEST,
        destination: Optional[Path] = None,
    ) -> Path:
        return self.retrieval_service.export(file_name, selector, destination)

    def get_version(self, file_name: str, selector: VersionSelector = LATEST) -> Version:
        return self.version_index.get_version(file_name, selector)

    def list_versions(self, file_name: str) -> Iterator[VersionInfo]:
        return self.version_index.list_versions(file_name)

    def list_files(self) -> List[FileEntry]:
        return self.version_index.list_files()

    def prune_version(self, file_name: str, version_number: int) -> VersionInfo:
        return self.maintenance_service.prune_version(file_name, version_number)

    def collect_garbage(self, dry_run: bool = False) -> GarbageCollectionReport:
        return self.maintenance_service.collect_garbage(dry_run=dry_run)

    def validate(self, deep: bool = False) -> ValidationReport:
        return self.maintenance_service.validate(deep=deep)

    def stats(self) -> StoreStats:
        return self.maintenance_service.stats()
