"""Push service: turns one source file into a new committed version."""

import os
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import BinaryIO, Callable, Dict, Iterator, List, Optional, Tuple

from catalog.version_index import VersionIndex
from chunkstore.checksum_validator import IncrementalFingerprint, compute_fingerprint, fingerprint_chunks
from chunkstore.chunk_store import ChunkStore
from chunkstore.chunker import ChunkBoundary, Chunker
from common.constants import DEFAULT_HASH_ALGORITHM
from common.exceptions import IncrestoreError, IntegrityError, NotFoundError, StorageIOError
from common.logging_config import get_logger
from common.types import ChunkPiece

logger = get_logger(__name__)


class PushState(str, Enum):
    START = "start"
    CHUNKING = "chunking"
    ADDRESSING = "addressing"
    DEDUP_RESOLVE = "dedup-resolve"
    PERSIST_NEW_CHUNKS = "persist-new-chunks"
    COMMIT_VERSION = "commit-version"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class PushResult:
    """
    Outcome of a successful push.
    """
    file_name: str
    version_number: int
    whole_file_fingerprint: str
    total_size: int
    chunk_count: int
    reused_chunks: int
    new_chunks: int
    bytes_written: int

    @property
    def bytes_saved(self) -> int:
        return self.total_size - self.bytes_written


@dataclass
class _PushRun:
    """Mutable bookkeeping for one push."""
    file_name: str
    on_state: Optional[Callable[[PushState], None]] = None
    state: PushState = PushState.START
    # fingerprint -> references added by this run, released on failure
    acquired: Dict[str, int] = field(default_factory=dict)

    def enter(self, state: PushState) -> None:
        self.state = state
        logger.debug(f"Push of '{self.file_name}' entered state {state.value}")
        if self.on_state is not None:
            self.on_state(state)

    def record_acquired(self, fingerprint: str, count: int) -> None:
        self.acquired[fingerprint] = self.acquired.get(fingerprint, 0) + count


class PushService:
    """
    Runs the push pipeline for one file:
    Start -> Chunking -> Addressing -> Dedup-Resolve -> Persist-New-Chunks
    -> Commit-Version -> Done, with Failed reachable from every state but Done.

    Payload bytes are never held for the whole file. Chunking keeps only
    boundaries, addressing keeps only fingerprints, and novel chunks are
    re-read from the source right before they are persisted.

    Callers must serialize pushes per file name.
    """

    def __init__(
        self,
        chunk_store: ChunkStore,
        version_index: VersionIndex,
        chunker: Chunker,
        hash_algorithm: str = DEFAULT_HASH_ALGORITHM,
        hash_workers: int = 1,
    ):
        self.chunk_store = chunk_store
        self.version_index = version_index
        self.chunker = chunker
        self.hash_algorithm = hash_algorithm
        self.hash_workers = hash_workers

    def push(
        self,
        source_path: Path,
        file_name: Optional[str] = None,
        on_state: Optional[Callable[[PushState], None]] = None,
    ) -> PushResult:
        """
        Push a file as the next version of `file_name`.

        Args:
            source_path: File to read
            file_name: Logical name, defaults to the source's base name
            on_state: Called with each state the pipeline enters

        Returns:
            PushResult with the new version number and byte savings

        Raises:
            StorageIOError: If the source or the store cannot be read or written
            IntegrityError: If the source changes while being pushed
            ConflictError: If another commit for the same name got in first
        """
        source_path = Path(source_path)
        file_name = file_name or source_path.name
        run = _PushRun(file_name=file_name, on_state=on_state)
        run.enter(PushState.START)

        try:
            result = self._run(run, source_path)
        except BaseException as e:
            run.enter(PushState.FAILED)
            logger.error(f"Push of '{file_name}' failed: {e}")
            self._rollback(run)
            raise

        run.enter(PushState.DONE)
        logger.info(
            f"Pushed '{file_name}' as version {result.version_number} "
            f"[chunks={result.chunk_count}, new={result.new_chunks}, "
            f"reused={result.reused_chunks}, bytes_saved={result.bytes_saved}]"
        )
        return result

    def _run(self, run: _PushRun, source_path: Path) -> PushResult:
        try:
            source = open(source_path, "rb")
        except FileNotFoundError as e:
            raise NotFoundError(f"Source file not found: {source_path}") from e
        except OSError as e:
            raise StorageIOError(f"Cannot open source file {source_path}: {e}") from e

        with source:
            total_size = os.fstat(source.fileno()).st_size

            run.enter(PushState.CHUNKING)
            boundaries = list(self.chunker.iter_boundaries(source))

            run.enter(PushState.ADDRESSING)
            addressed, whole_file_fingerprint = self._address(source, boundaries, total_size)
            ordered_chunk_list = [fingerprint for _, fingerprint in addressed]

            run.enter(PushState.DEDUP_RESOLVE)
            occurrences = Counter(ordered_chunk_list)
            first_boundary = {}
            for boundary, fingerprint in addressed:
                first_boundary.setdefault(fingerprint, boundary)

            novel = []
            reused = 0
            for fingerprint, count in occurrences.items():
                if self.chunk_store.has(fingerprint):
                    try:
                        self.chunk_store.acquire(fingerprint, count)
                    except NotFoundError:
                        novel.append(fingerprint)
                        continue
                    run.record_acquired(fingerprint, count)
                    reused += 1
                else:
                    novel.append(fingerprint)

            run.enter(PushState.PERSIST_NEW_CHUNKS)
            bytes_written = 0
            for fingerprint in novel:
                boundary = first_boundary[fingerprint]
                payload = self._read_range(source, boundary)
                if compute_fingerprint(payload, self.hash_algorithm) != fingerprint:
                    raise IntegrityError(
                        f"Source changed during push: chunk at offset {boundary.offset} "
                        f"no longer matches its fingerprint"
                    )
                put_result = self.chunk_store.put(fingerprint, payload)
                run.record_acquired(fingerprint, 1)
                if put_result.written:
                    bytes_written += put_result.length

                extra = occurrences[fingerprint] - 1
                if extra:
                    self.chunk_store.acquire(fingerprint, extra)
                    run.record_acquired(fingerprint, extra)

        run.enter(PushState.COMMIT_VERSION)
        version_number = self.version_index.next_version_number(run.file_name)
        self.version_index.commit_version(
            run.file_name,
            version_number,
            whole_file_fingerprint,
            total_size,
            ordered_chunk_list,
        )

        return PushResult(
            file_name=run.file_name,
            version_number=version_number,
            whole_file_fingerprint=whole_file_fingerprint,
            total_size=total_size,
            chunk_count=len(ordered_chunk_list),
            reused_chunks=reused,
            new_chunks=len(novel),
            bytes_written=bytes_written,
        )

    def _address(
        self, source: BinaryIO, boundaries: List[ChunkBoundary], total_size: int
    ) -> Tuple[List[Tuple[ChunkBoundary, str]], str]:
        """
        Fingerprint every chunk and, over the same bytes, the whole file.
        """
        whole_file = IncrementalFingerprint(self.hash_algorithm)

        def pieces() -> Iterator[ChunkPiece]:
            source.seek(0)
            for boundary in boundaries:
                data = self._read_range(source, boundary, seek=False)
                whole_file.update(data)
                yield ChunkPiece(offset=boundary.offset, data=data)

        addressed = [
            (ChunkBoundary(piece.offset, piece.length), fingerprint)
            for piece, fingerprint in fingerprint_chunks(
                pieces(), self.hash_algorithm, self.hash_workers
            )
        ]

        if whole_file.size != total_size:
            raise IntegrityError(
                f"Source changed during push: read {whole_file.size} bytes, expected {total_size}"
            )
        return addressed, whole_file.finalize()

    @staticmethod
    def _read_range(source: BinaryIO, boundary: ChunkBoundary, seek: bool = True) -> bytes:
        try:
            if seek:
                source.seek(boundary.offset)
            data = source.read(boundary.length)
        except OSError as e:
            raise StorageIOError(f"Failed to read source at offset {boundary.offset}: {e}") from e
        if len(data) != boundary.length:
            raise IntegrityError(
                f"Source changed during push: short read at offset {boundary.offset}"
            )
        return data

    def _rollback(self, run: _PushRun) -> None:
        """Release every reference this run added; no version was committed."""
        for fingerprint, count in run.acquired.items():
            try:
                self.chunk_store.release(fingerprint, count)
            except IncrestoreError as e:
                logger.error(f"Rollback could not release chunk {fingerprint} x{count}: {e}")
        if run.acquired:
            logger.info(f"Rolled back {sum(run.acquired.values())} chunk references")
