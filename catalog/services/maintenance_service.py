"""Maintenance service: garbage collection, consistency checks, statistics, pruning."""

from catalog.database import Database
from catalog.repositories.chunk_repository import ChunkRepository
from catalog.repositories.version_repository import VersionRepository
from chunkstore.checksum_validator import IncrementalFingerprint, verify_fingerprint
from chunkstore.chunk_store import ChunkStore
from common.constants import DEFAULT_HASH_ALGORITHM
from common.exceptions import IncrestoreError, NotFoundError
from common.logging_config import get_logger
from common.types import GarbageCollectionReport, StoreStats, ValidationReport, VersionInfo

logger = get_logger(__name__)


class MaintenanceService:
    """
    Explicit upkeep operations. None of them is ever triggered by a push or
    a retrieval.
    """

    def __init__(
        self,
        chunk_store: ChunkStore,
        database: Database,
        hash_algorithm: str = DEFAULT_HASH_ALGORITHM,
    ):
        self.chunk_store = chunk_store
        self.database = database
        self.hash_algorithm = hash_algorithm
        self.chunk_repo = ChunkRepository()
        self.version_repo = VersionRepository()

    def collect_garbage(self, dry_run: bool = False) -> GarbageCollectionReport:
        return self.chunk_store.collect_garbage(dry_run=dry_run)

    def prune_version(self, file_name: str, version_number: int) -> VersionInfo:
        """
        Delete one version and release one reference per occurrence of each
        chunk in its list, in a single transaction. Payloads stay until the
        next garbage collection; the latest pointer is not moved so version
        numbers are never reused.

        Raises:
            NotFoundError: If the version does not exist
        """
        with self.database.transaction() as conn:
            info = self.version_repo.get_version_info(conn, file_name, version_number)
            if info is None:
                raise NotFoundError(f"Version {version_number} of '{file_name}' not found")

            released = self.version_repo.delete_version(conn, file_name, version_number)
            for fingerprint, count in released.items():
                self.chunk_repo.decrement(conn, fingerprint, count)

        logger.info(
            f"Pruned version {version_number} of '{file_name}' "
            f"[released {sum(released.values())} references to {len(released)} chunks]"
        )
        return info

    def stats(self) -> StoreStats:
        with self.database.connect() as conn:
            chunk_totals = self.chunk_repo.totals(conn)
            version_totals = self.version_repo.totals(conn)

        return StoreStats(
            file_count=version_totals["file_count"],
            version_count=version_totals["version_count"],
            chunk_count=chunk_totals["chunk_count"],
            logical_bytes=version_totals["logical_bytes"],
            stored_bytes=chunk_totals["stored_bytes"],
            unreferenced_chunks=chunk_totals["unreferenced"],
        )

    def validate(self, deep: bool = False) -> ValidationReport:
        """
        Scan the index against the payload area.

        Missing payloads are reported, never repaired: they mean a committed
        version can no longer be rebuilt. Orphan payloads are harmless and
        left for garbage collection.

        Args:
            deep: Also re-fingerprint every payload and every version

        Returns:
            ValidationReport
        """
        missing = self.chunk_store.missing_payloads()
        orphans = self.chunk_store.orphan_payloads()
        corrupt_chunks = []
        corrupt_versions = []

        with self.database.connect() as conn:
            records = list(self.chunk_repo.iter_all(conn))
            versions = list(self.version_repo.iter_versions(conn))
            live_counts = self.version_repo.reference_counts(conn)

        refcount_mismatches = []
        for record in records:
            expected = live_counts.get(record.fingerprint, 0)
            if record.reference_count != expected:
                logger.warning(
                    f"Chunk {record.fingerprint} has reference count "
                    f"{record.reference_count}, live versions cite it {expected} times"
                )
                refcount_mismatches.append(record.fingerprint)

        missing_set = set(missing)
        if deep:
            for record in records:
                if record.fingerprint in missing_set:
                    continue
                try:
                    payload = self.chunk_store.storage.read_chunk(record.fingerprint)
                except NotFoundError:
                    missing.append(record.fingerprint)
                    missing_set.add(record.fingerprint)
                    continue
                if (
                    len(payload) != record.length
                    or not verify_fingerprint(payload, record.fingerprint, self.hash_algorithm)
                ):
                    logger.error(f"Chunk {record.fingerprint} is corrupt")
                    corrupt_chunks.append(record.fingerprint)

            for info in versions:
                if not self._version_intact(info, missing_set, set(corrupt_chunks)):
                    corrupt_versions.append(f"{info.file_name}@{info.version_number}")

        for fingerprint in missing:
            logger.error(f"Chunk {fingerprint} is registered but its payload is missing")

        report = ValidationReport(
            checked_chunks=len(records),
            checked_versions=len(versions),
            missing_payloads=missing,
            orphan_payloads=orphans,
            corrupt_chunks=corrupt_chunks,
            corrupt_versions=corrupt_versions,
            refcount_mismatches=refcount_mismatches,
        )
        logger.info(
            f"Validation {'passed' if report.ok else 'FAILED'}: "
            f"{report.checked_chunks} chunks, {report.checked_versions} versions, "
            f"{len(missing)} missing, {len(orphans)} orphans, "
            f"{len(corrupt_chunks)} corrupt chunks, {len(corrupt_versions)} corrupt versions"
        )
        return report

    def _version_intact(self, info: VersionInfo, missing: set, corrupt: set) -> bool:
        with self.database.connect() as conn:
            chunk_list = self.version_repo.get_chunk_list(conn, info.file_name, info.version_number)

        if any(fingerprint in missing or fingerprint in corrupt for fingerprint in chunk_list):
            return False

        whole_file = IncrementalFingerprint(self.hash_algorithm)
        try:
            for fingerprint in chunk_list:
                whole_file.update(self.chunk_store.get(fingerprint))
        except IncrestoreError as e:
            logger.error(f"Cannot rebuild '{info.file_name}' v{info.version_number}: {e}")
            return False

        return (
            whole_file.size == info.total_size
            and whole_file.finalize() == info.whole_file_fingerprint
        )
