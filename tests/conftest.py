"""Shared pytest fixtures for all tests."""

import random

import pytest

from catalog.config import StoreConfig
from catalog.store import IncrementalStore


@pytest.fixture
def store_config(tmp_path):
    """
    Create a store config with small chunks so test files span many chunks.

    Args:
        tmp_path: pytest tmp_path fixture

    Returns:
        StoreConfig rooted in a temporary workdir
    """
    return StoreConfig(
        workdir=tmp_path / 'store',
        min_chunk_size=256,
        boundary_bits=8,
        max_chunk_size=4096,
        window_size=32,
        fsync=False,
        read_block_size=4096,
    )


@pytest.fixture
def store(store_config):
    """
    Open an IncrementalStore on the temporary workdir.
    """
    return IncrementalStore(store_config)


@pytest.fixture
def tiny_store(tmp_path):
    """
    Store that cuts every 4 bytes: boundary_bits=0 makes every position past
    the minimum a boundary.
    """
    config = StoreConfig(
        workdir=tmp_path / 'tiny',
        min_chunk_size=4,
        boundary_bits=0,
        max_chunk_size=64,
        window_size=4,
        fsync=False,
    )
    return IncrementalStore(config)


@pytest.fixture
def sample_file(tmp_path):
    """
    Create a sample file for testing pushes.

    Args:
        tmp_path: pytest tmp_path fixture

    Returns:
        Path to sample text file
    """
    file_path = tmp_path / 'test.txt'
    file_path.write_text('Sample content for testing')
    return file_path


@pytest.fixture
def random_bytes():
    """
    Factory for reproducible pseudo-random content.

    Returns:
        Callable (size, seed) -> bytes
    """
    def make(size: int, seed: int = 0) -> bytes:
        return random.Random(seed).randbytes(size)
    return make


@pytest.fixture
def write_file(tmp_path):
    """
    Factory writing bytes to a file under tmp_path.

    Returns:
        Callable (name, data) -> Path
    """
    def write(name: str, data: bytes):
        path = tmp_path / name
        path.write_bytes(data)
        return path
    return write
