"""Integration tests for a store used across several opens and writers."""

import threading

import pytest

from catalog.config import StoreConfig
from catalog.store import IncrementalStore


@pytest.fixture
def workdir(tmp_path):
    return tmp_path / "archive"


def open_store(workdir) -> IncrementalStore:
    return IncrementalStore.open(workdir, fsync=False)


def test_history_survives_reopen(workdir, write_file, random_bytes):
    """Versions pushed by one process are readable by the next."""
    base = random_bytes(200_000, seed=21)
    path = write_file("dataset.bin", base)
    open_store(workdir).push(path)

    path.write_bytes(base[:100_000] + b"patched" + base[100_000:])
    second = open_store(workdir).push(path)

    reopened = open_store(workdir)
    assert second.version_number == 2
    assert second.bytes_saved > 150_000
    assert reopened.retrieve("dataset.bin", 1) == base
    assert reopened.retrieve("dataset.bin") == path.read_bytes()
    assert reopened.validate(deep=True).ok


def test_open_uses_persisted_parameters(workdir, write_file):
    """Opening with defaults picks up the chunking parameters of the workdir."""
    IncrementalStore(StoreConfig(
        workdir=workdir, min_chunk_size=64, boundary_bits=6,
        max_chunk_size=1024, window_size=16, fsync=False,
    ))

    reopened = open_store(workdir)

    assert reopened.config.min_chunk_size == 64
    assert reopened.config.boundary_bits == 6


def test_concurrent_pushes_to_different_names(workdir, write_file, random_bytes):
    """Pushes to distinct names only share the chunk store and stay consistent."""
    store = open_store(workdir)
    shared = random_bytes(60_000, seed=22)
    paths = [
        write_file(f"part-{i}.bin", shared + random_bytes(5_000, seed=100 + i))
        for i in range(4)
    ]
    errors = []

    def push(path):
        try:
            store.push(path)
        except Exception as e:
            errors.append(e)

    threads = [threading.Thread(target=push, args=(path,)) for path in paths]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    assert sorted(entry.file_name for entry in store.list_files()) == [p.name for p in paths]
    for path in paths:
        assert store.retrieve(path.name) == path.read_bytes()

    report = store.validate(deep=True)
    assert report.ok
    assert report.refcount_mismatches == []


def test_full_lifecycle_reclaims_space(workdir, write_file, random_bytes):
    store = open_store(workdir)
    path = write_file("log.bin", random_bytes(50_000, seed=23))
    store.push(path)
    path.write_bytes(random_bytes(50_000, seed=24))
    store.push(path)

    store.prune_version("log.bin", 1)
    report = store.collect_garbage()
    stats = store.stats()

    assert report.reclaimed_bytes > 0
    assert stats.version_count == 1
    assert stats.unreferenced_chunks == 0
    assert stats.stored_bytes == 50_000
    assert store.retrieve("log.bin") == path.read_bytes()
