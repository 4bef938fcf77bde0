"""Shared data type definitions (ChunkRecord, VersionInfo, Version, reports)."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Literal, Union

VersionSelector = Union[int, Literal["latest"]]


@dataclass(frozen=True)
class ChunkRecord:
    """
    Chunk Store entry: fingerprint, payload length and live reference count.
    """
    fingerprint: str
    length: int
    reference_count: int
    created_at: datetime


@dataclass(frozen=True)
class ChunkPiece:
    """
    A contiguous byte range cut from a source stream by the chunker.
    """
    offset: int
    data: bytes

    @property
    def length(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class FileEntry:
    """
    File Name Registry row.
    """
    file_name: str
    latest_version: int
    updated_at: datetime


@dataclass(frozen=True)
class VersionInfo:
    """
    Version metadata without its chunk list.
    """
    file_name: str
    version_number: int
    whole_file_fingerprint: str
    total_size: int
    chunk_count: int
    created_at: datetime


@dataclass(frozen=True)
class Version(VersionInfo):
    """
    Complete version record; concatenating the payloads of
    `ordered_chunk_list` reproduces the pushed file.
    """
    ordered_chunk_list: tuple[str, ...] = ()


@dataclass(frozen=True)
class PutResult:
    """
    Outcome of a single Chunk Store put.
    """
    fingerprint: str
    length: int
    written: bool
    reference_count: int


@dataclass(frozen=True)
class GarbageCollectionReport:
    removed_chunks: List[str] = field(default_factory=list)
    removed_orphans: List[str] = field(default_factory=list)
    reclaimed_bytes: int = 0
    dry_run: bool = False


@dataclass(frozen=True)
class ValidationReport:
    """
    Result of a consistency scan between the index and the payload area.

    `missing_payloads` and `corrupt_chunks` are fatal and need manual
    intervention; `orphan_payloads` are harmless and reclaimed by gc;
    `refcount_mismatches` lists chunks whose count differs from live usage,
    which an aborted push may leave behind.
    """
    checked_chunks: int
    checked_versions: int
    missing_payloads: List[str] = field(default_factory=list)
    orphan_payloads: List[str] = field(default_factory=list)
    corrupt_chunks: List[str] = field(default_factory=list)
    corrupt_versions: List[str] = field(default_factory=list)
    refcount_mismatches: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not (self.missing_payloads or self.corrupt_chunks or self.corrupt_versions)


@dataclass(frozen=True)
class StoreStats:
    file_count: int
    version_count: int
    chunk_count: int
    logical_bytes: int
    stored_bytes: int
    unreferenced_chunks: int

    @property
    def dedup_ratio(self) -> float:
        if self.stored_bytes == 0:
            return 0.0
        return self.logical_bytes / self.stored_bytes
