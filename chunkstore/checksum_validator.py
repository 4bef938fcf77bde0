"""Provides fingerprint (cryptographic hash) calculation and verification helpers."""

import hashlib
from concurrent.futures import ThreadPoolExecutor
from itertools import islice
from typing import Iterable, Iterator, Tuple

from common.constants import DEFAULT_HASH_ALGORITHM
from common.types import ChunkPiece


def _new_hasher(algorithm: str):
    if algorithm not in hashlib.algorithms_guaranteed:
        raise ValueError(f"Unsupported hash algorithm: {algorithm}")
    if algorithm.startswith("shake_"):
        raise ValueError(f"Variable-length digest not supported: {algorithm}")
    return hashlib.new(algorithm)


def compute_fingerprint(data: bytes, algorithm: str = DEFAULT_HASH_ALGORITHM) -> str:
    """
    Compute the fingerprint of given data.

    Args:
        data: Bytes to fingerprint
        algorithm: hashlib algorithm name

    Returns:
        Hexadecimal digest string
    """
    hasher = _new_hasher(algorithm)
    hasher.update(data)
    return hasher.hexdigest()


def verify_fingerprint(
    data: bytes, expected: str, algorithm: str = DEFAULT_HASH_ALGORITHM
) -> bool:
    """
    Verify that data matches expected fingerprint.

    Args:
        data: Bytes to verify
        expected: Expected hex digest
        algorithm: hashlib algorithm name

    Returns:
        True if fingerprint matches, False otherwise
    """
    return compute_fingerprint(data, algorithm) == expected


class IncrementalFingerprint:
    """
    Calculate a fingerprint incrementally for streaming data.

    Usage:
        calculator = IncrementalFingerprint()
        calculator.update(block1)
        calculator.update(block2)
        whole_file_fingerprint = calculator.finalize()
    """

    def __init__(self, algorithm: str = DEFAULT_HASH_ALGORITHM):
        """Initialize a new incremental fingerprint calculator."""
        self.algorithm = algorithm
        self._hasher = _new_hasher(algorithm)
        self._finalized = False
        self.size = 0

    def update(self, data: bytes) -> None:
        """
        Update fingerprint with new data.

        Args:
            data: Bytes to add to the calculation
        """
        if self._finalized:
            raise ValueError("Cannot update after finalization")
        self._hasher.update(data)
        self.size += len(data)

    def finalize(self) -> str:
        """
        Finalize calculation and return result.

        Returns:
            Hexadecimal digest string
        """
        self._finalized = True
        return self._hasher.hexdigest()

    def reset(self) -> None:
        """Reset calculator to initial state."""
        self._hasher = _new_hasher(self.algorithm)
        self._finalized = False
        self.size = 0


def fingerprint_chunks(
    pieces: Iterable[ChunkPiece],
    algorithm: str = DEFAULT_HASH_ALGORITHM,
    workers: int = 1,
) -> Iterator[Tuple[ChunkPiece, str]]:
    """
    Fingerprint chunk pieces, yielding `(piece, fingerprint)` in input order.

    With `workers > 1` pieces are hashed on a thread pool in bounded batches;
    hashlib releases the GIL for large buffers. Output order always matches
    input order.

    Args:
        pieces: Chunk pieces in stream order
        algorithm: hashlib algorithm name
        workers: Number of hashing threads

    Yields:
        Tuples of piece and its fingerprint
    """
    _new_hasher(algorithm)

    if workers <= 1:
        for piece in pieces:
            yield piece, compute_fingerprint(piece.data, algorithm)
        return

    iterator = iter(pieces)
    batch_size = workers * 4
    with ThreadPoolExecutor(max_workers=workers) as executor:
        while True:
            batch = list(islice(iterator, batch_size))
            if not batch:
                break
            digests = executor.map(
                lambda piece: compute_fingerprint(piece.data, algorithm), batch
            )
            yield from zip(batch, digests)
