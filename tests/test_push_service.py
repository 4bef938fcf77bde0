"""Tests for the push pipeline."""

import gzip

import pytest

from catalog.repositories.chunk_repository import ChunkRepository
from catalog.repositories.version_repository import VersionRepository
from catalog.services.push_service import PushState
from catalog.store import IncrementalStore
from chunkstore.checksum_validator import compute_fingerprint
from common.exceptions import ConflictError, IntegrityError, NotFoundError, StorageIOError


def reference_counts(store) -> dict:
    with store.database.connect() as conn:
        return {record.fingerprint: record.reference_count for record in ChunkRepository.iter_all(conn)}


def live_occurrences(store) -> dict:
    with store.database.connect() as conn:
        return VersionRepository.reference_counts(conn)


def assert_counts_conserved(store):
    live = live_occurrences(store)
    counts = reference_counts(store)
    assert set(live) <= set(counts)
    for fingerprint, count in counts.items():
        assert count == live.get(fingerprint, 0), fingerprint


class TestRoundTrip:

    def test_push_then_retrieve(self, store, write_file, random_bytes):
        data = random_bytes(50_000, seed=1)
        result = store.push(write_file("doc.bin", data))

        assert result.file_name == "doc.bin"
        assert result.version_number == 1
        assert result.total_size == len(data)
        assert result.whole_file_fingerprint == compute_fingerprint(data)
        assert result.chunk_count > 1
        assert result.new_chunks == result.chunk_count
        assert result.bytes_written == len(data)
        assert result.bytes_saved == 0
        assert store.retrieve("doc.bin", 1) == data

    def test_logical_name_override(self, store, sample_file):
        result = store.push(sample_file, "notes/readme.txt")
        assert result.file_name == "notes/readme.txt"
        assert store.retrieve("notes/readme.txt") == sample_file.read_bytes()

    def test_empty_file(self, store, write_file):
        result = store.push(write_file("empty.bin", b""))

        assert result.chunk_count == 0
        assert result.total_size == 0
        assert store.retrieve("empty.bin") == b""

    def test_small_file_is_single_chunk(self, store, sample_file):
        result = store.push(sample_file)
        assert result.chunk_count == 1
        assert store.retrieve("test.txt") == b"Sample content for testing"

    def test_compressed_input_is_stored_as_is(self, store, write_file, random_bytes):
        packed = gzip.compress(random_bytes(20_000, seed=13))
        result = store.push(write_file("archive.tar.gz", packed))

        assert result.total_size == len(packed)
        assert result.whole_file_fingerprint == compute_fingerprint(packed)
        assert store.retrieve("archive.tar.gz") == packed

    def test_missing_source_raises(self, store, tmp_path):
        with pytest.raises(NotFoundError):
            store.push(tmp_path / "missing.txt")
        assert store.list_files() == []

    def test_parallel_hashing_gives_same_version(self, store, store_config, write_file, random_bytes):
        path = write_file("doc.bin", random_bytes(40_000, seed=2))
        first = store.push(path)

        parallel = IncrementalStore(store_config.model_copy(update={"hash_workers": 3}))
        second = parallel.push(path)

        assert second.new_chunks == 0
        assert (
            parallel.get_version("doc.bin", 2).ordered_chunk_list
            == store.get_version("doc.bin", 1).ordered_chunk_list
        )
        assert first.whole_file_fingerprint == second.whole_file_fingerprint


class TestDeduplication:

    def test_same_content_twice_writes_nothing(self, store, write_file, random_bytes):
        path = write_file("doc.bin", random_bytes(30_000, seed=3))
        store.push(path)
        payloads_before = list(store.storage.iter_fingerprints())

        second = store.push(path)

        assert second.version_number == 2
        assert second.new_chunks == 0
        assert second.bytes_written == 0
        assert second.bytes_saved == second.total_size
        assert list(store.storage.iter_fingerprints()) == payloads_before
        assert (
            store.get_version("doc.bin", 2).ordered_chunk_list
            == store.get_version("doc.bin", 1).ordered_chunk_list
        )

    def test_insertion_scenario(self, tiny_store, write_file):
        path = write_file("A", b"AAAABBBBCCCC")
        tiny_store.push(path)
        path.write_bytes(b"AAAABBBBXXXXCCCC")
        result = tiny_store.push(path)

        v1 = tiny_store.get_version("A", 1).ordered_chunk_list
        v2 = tiny_store.get_version("A", 2).ordered_chunk_list

        assert result.version_number == 2
        assert v2[0] == v1[0] == compute_fingerprint(b"AAAA")
        assert v2[-1] == v1[-1] == compute_fingerprint(b"CCCC")
        novel = set(v2) - set(v1)
        assert novel == {compute_fingerprint(b"XXXX")}
        assert result.new_chunks == 1
        assert result.bytes_written == 4
        assert tiny_store.retrieve("A", 2) == b"AAAABBBBXXXXCCCC"
        assert tiny_store.retrieve("A", 1) == b"AAAABBBBCCCC"

    def test_small_insert_reuses_most_chunks(self, store, write_file, random_bytes):
        base = random_bytes(64 * 1024, seed=4)
        path = write_file("doc.bin", base)
        first = store.push(path)

        middle = len(base) // 2
        path.write_bytes(base[:middle] + b"0123456789" + base[middle:])
        second = store.push(path)

        assert first.chunk_count > 50
        assert second.new_chunks <= 6
        assert second.bytes_written < 6 * 4096
        assert second.bytes_saved > len(base) // 2

    def test_repeated_chunk_in_one_file(self, tiny_store, write_file):
        result = tiny_store.push(write_file("rep", b"ABCD" * 3 + b"EFGH"))

        assert result.chunk_count == 4
        assert result.new_chunks == 2
        assert result.bytes_written == 8
        assert reference_counts(tiny_store) == {
            compute_fingerprint(b"ABCD"): 3,
            compute_fingerprint(b"EFGH"): 1,
        }
        assert tiny_store.retrieve("rep") == b"ABCDABCDABCDEFGH"


class TestPipelineStates:

    def test_states_in_order(self, store, sample_file):
        states = []
        store.push(sample_file, on_state=states.append)

        assert states == [
            PushState.START,
            PushState.CHUNKING,
            PushState.ADDRESSING,
            PushState.DEDUP_RESOLVE,
            PushState.PERSIST_NEW_CHUNKS,
            PushState.COMMIT_VERSION,
            PushState.DONE,
        ]

    def test_failed_put_rolls_back_references(self, store, write_file, random_bytes, monkeypatch):
        base = random_bytes(40_000, seed=5)
        path = write_file("doc.bin", base)
        store.push(path)
        before = reference_counts(store)

        path.write_bytes(base[:20_000] + random_bytes(8_000, seed=6) + base[20_000:])

        original_put = store.chunk_store.put
        calls = []

        def flaky_put(fingerprint, payload):
            calls.append(fingerprint)
            if len(calls) == 2:
                raise StorageIOError("disk full")
            return original_put(fingerprint, payload)

        monkeypatch.setattr(store.chunk_store, "put", flaky_put)
        states = []

        with pytest.raises(StorageIOError):
            store.push(path, on_state=states.append)

        assert states[-1] == PushState.FAILED
        assert PushState.DONE not in states
        assert store.get_version("doc.bin").version_number == 1
        assert list(v.version_number for v in store.list_versions("doc.bin")) == [1]

        after = reference_counts(store)
        for fingerprint, count in after.items():
            assert count == before.get(fingerprint, 0)
        assert_counts_conserved(store)

        monkeypatch.undo()
        retry = store.push(path)
        assert retry.version_number == 2
        assert store.retrieve("doc.bin") == path.read_bytes()
        assert_counts_conserved(store)

    def test_source_changed_during_push_rolls_back(self, store, write_file, random_bytes):
        base = random_bytes(40_000, seed=10)
        path = write_file("doc.bin", base)
        store.push(path)
        before = reference_counts(store)

        edited = base[:20_000] + random_bytes(8_000, seed=11) + base[20_000:]
        path.write_bytes(edited)
        states = []

        def rewrite_after_chunking(state):
            states.append(state)
            if state == PushState.PERSIST_NEW_CHUNKS:
                # Same length, different bytes: only the re-read can notice.
                path.write_bytes(bytes(len(edited)))

        with pytest.raises(IntegrityError):
            store.push(path, on_state=rewrite_after_chunking)

        assert states[-1] == PushState.FAILED
        assert PushState.COMMIT_VERSION not in states
        assert [v.version_number for v in store.list_versions("doc.bin")] == [1]
        after = reference_counts(store)
        for fingerprint, count in after.items():
            assert count == before.get(fingerprint, 0)
        assert_counts_conserved(store)
        assert store.retrieve("doc.bin") == base

    def test_source_truncated_during_push_rolls_back(self, store, write_file, random_bytes):
        path = write_file("fresh.bin", random_bytes(30_000, seed=12))
        states = []

        def truncate_after_chunking(state):
            states.append(state)
            if state == PushState.ADDRESSING:
                path.write_bytes(b"short")

        with pytest.raises(IntegrityError):
            store.push(path, on_state=truncate_after_chunking)

        assert states[-1] == PushState.FAILED
        assert "fresh.bin" not in [entry.file_name for entry in store.list_files()]
        with pytest.raises(NotFoundError):
            store.get_version("fresh.bin")
        assert all(count == 0 for count in reference_counts(store).values())

    def test_commit_conflict_rolls_back(self, store, write_file, random_bytes, monkeypatch):
        path = write_file("doc.bin", random_bytes(20_000, seed=7))
        store.push(path)
        before = reference_counts(store)

        monkeypatch.setattr(store.version_index, "next_version_number", lambda name: 7)

        with pytest.raises(ConflictError):
            store.push(path)

        assert reference_counts(store) == before
        assert store.get_version("doc.bin").version_number == 1


class TestReferenceCounts:

    def test_conserved_across_pushes_and_prunes(self, store, write_file, random_bytes):
        base = random_bytes(30_000, seed=8)
        path = write_file("doc.bin", base)
        store.push(path)
        path.write_bytes(base + random_bytes(3_000, seed=9))
        store.push(path)
        store.push(write_file("other.bin", base[:10_000]), "other.bin")
        path.write_bytes(base[5_000:])
        store.push(path)
        assert_counts_conserved(store)

        store.prune_version("doc.bin", 2)
        assert_counts_conserved(store)
        store.prune_version("doc.bin", 1)
        assert_counts_conserved(store)

        store.collect_garbage()
        assert_counts_conserved(store)
        assert store.retrieve("doc.bin", 3) == base[5_000:]
        assert store.retrieve("other.bin") == base[:10_000]
