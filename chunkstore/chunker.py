"""
Content-defined chunking.

A buzhash (cyclic polynomial) rolling hash is evaluated over a fixed-size
sliding window. A cut is declared after position `c` when the low
`boundary_bits` bits of the hash of the window ending at `c` are all zero,
provided the chunk is at least `min_size` long. A chunk that reaches
`max_size` without a matching window is cut there.

The hash only depends on the bytes inside the window, so an insertion or
deletion only moves the boundaries near the edit; once a boundary is found
past the edit the remaining boundaries line up with the previous version
again.
"""

import hashlib
from dataclasses import dataclass
from io import BytesIO
from pathlib import Path
from typing import BinaryIO, Iterator, List

from common.constants import (
    BOUNDARY_BITS,
    MAX_CHUNK_SIZE_BYTES,
    MIN_CHUNK_SIZE_BYTES,
    READ_BLOCK_SIZE_BYTES,
    ROLLING_WINDOW_BYTES,
)
from common.types import ChunkPiece

_MASK32 = 0xFFFFFFFF


def _rotl(value: int, count: int) -> int:
    count %= 32
    return ((value << count) | (value >> (32 - count))) & _MASK32


def _build_byte_table() -> tuple:
    # Fixed per-byte values; identical on every run and platform.
    return tuple(
        int.from_bytes(hashlib.sha256(bytes([value])).digest()[:4], "big")
        for value in range(256)
    )


BYTE_TABLE = _build_byte_table()


@dataclass(frozen=True)
class ChunkBoundary:
    """
    Position of one chunk inside the source stream.
    """
    offset: int
    length: int

    @property
    def end(self) -> int:
        return self.offset + self.length


class Chunker:
    """
    Splits byte streams into content-defined chunks.

    Attributes:
        min_size: Smallest chunk emitted, except for the final chunk
        max_size: Largest chunk emitted; a cut is forced at this length
        boundary_bits: Number of low hash bits that must be zero at a cut
        window_size: Width of the rolling hash window in bytes
        read_block_size: Bytes requested from the stream per read
    """

    def __init__(
        self,
        min_size: int = MIN_CHUNK_SIZE_BYTES,
        max_size: int = MAX_CHUNK_SIZE_BYTES,
        boundary_bits: int = BOUNDARY_BITS,
        window_size: int = ROLLING_WINDOW_BYTES,
        read_block_size: int = READ_BLOCK_SIZE_BYTES,
    ):
        if min_size < 1:
            raise ValueError("min_size must be positive")
        if max_size < min_size:
            raise ValueError("max_size must be >= min_size")
        if not 0 <= boundary_bits <= 31:
            raise ValueError("boundary_bits must be between 0 and 31")
        if not 1 <= window_size <= min_size:
            raise ValueError("window_size must be between 1 and min_size")
        if read_block_size < 1:
            raise ValueError("read_block_size must be positive")

        self.min_size = min_size
        self.max_size = max_size
        self.boundary_bits = boundary_bits
        self.window_size = window_size
        self.read_block_size = read_block_size
        self._mask = (1 << boundary_bits) - 1
        # Contribution of the byte leaving the window after `window_size` rotations.
        self._out_table = tuple(_rotl(value, window_size) for value in BYTE_TABLE)

    @classmethod
    def from_config(cls, config) -> "Chunker":
        return cls(
            min_size=config.min_chunk_size,
            max_size=config.max_chunk_size,
            boundary_bits=config.boundary_bits,
            window_size=config.window_size,
            read_block_size=config.read_block_size,
        )

    def window_hash(self, window: bytes) -> int:
        """Buzhash of a complete window."""
        value = 0
        for byte in window:
            value = _rotl(value, 1) ^ BYTE_TABLE[byte]
        return value

    def _find_cut(self, buffer: bytearray, start: int = 0) -> int:
        """
        Return the length of the next chunk beginning at `buffer[start]`.

        The caller guarantees at least `max_size` bytes are buffered past
        `start` unless the stream is exhausted, so the result only depends
        on content.
        """
        size = len(buffer) - start
        if size <= self.min_size:
            return size

        limit = min(size, self.max_size)
        mask = self._mask
        table = BYTE_TABLE
        out_table = self._out_table
        window = self.window_size

        first = start + self.min_size
        value = self.window_hash(buffer[first - window:first])
        if value & mask == 0:
            return self.min_size

        # Bytes entering the window paired with the bytes leaving it.
        stop = start + limit
        incoming = buffer[first:stop]
        outgoing = buffer[first - window:stop - window]
        length = first - start
        for leaving, entering in zip(outgoing, incoming):
            length += 1
            value = (
                (((value << 1) & _MASK32) | (value >> 31))
                ^ out_table[leaving]
                ^ table[entering]
            )
            if not value & mask:
                return length

        return limit

    def iter_chunks(self, stream: BinaryIO) -> Iterator[ChunkPiece]:
        """
        Lazily split a binary stream into chunk pieces.

        Args:
            stream: Readable binary stream positioned at the start of the data

        Yields:
            ChunkPiece objects in stream order; an empty stream yields nothing
        """
        buffer = bytearray()
        start = 0
        offset = 0
        exhausted = False

        while True:
            while not exhausted and len(buffer) - start < self.max_size:
                if start >= self.read_block_size:
                    del buffer[:start]
                    start = 0
                block = stream.read(self.read_block_size)
                if not block:
                    exhausted = True
                    break
                buffer += block

            if start >= len(buffer):
                return

            cut = self._find_cut(buffer, start)
            data = bytes(buffer[start:start + cut])
            start += cut
            yield ChunkPiece(offset=offset, data=data)
            offset += cut

    def iter_boundaries(self, stream: BinaryIO) -> Iterator[ChunkBoundary]:
        """Yield only the boundaries of `stream`, discarding payload bytes."""
        for piece in self.iter_chunks(stream):
            yield ChunkBoundary(offset=piece.offset, length=piece.length)

    def chunk_bytes(self, data: bytes) -> List[ChunkPiece]:
        """Split an in-memory byte string."""
        return list(self.iter_chunks(BytesIO(data)))

    def chunk_file(self, path: Path) -> Iterator[ChunkPiece]:
        """
        Split a file into content-defined chunks.

        Each call reopens the file, so the sequence can be restarted by
        calling again.

        Raises:
            FileNotFoundError: If the file does not exist.
        """
        with open(path, "rb") as f:
            yield from self.iter_chunks(f)
