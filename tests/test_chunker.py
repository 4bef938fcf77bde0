"""Tests for content-defined chunking."""

from io import BytesIO

import pytest

from chunkstore.chunker import BYTE_TABLE, Chunker


@pytest.fixture
def chunker():
    return Chunker(min_size=256, max_size=4096, boundary_bits=8, window_size=32, read_block_size=4096)


def joined(pieces) -> bytes:
    return b"".join(piece.data for piece in pieces)


class TestChunkerBasics:
    """Tests for chunk sequence shape."""

    def test_empty_stream_yields_nothing(self, chunker):
        assert chunker.chunk_bytes(b"") == []

    def test_data_shorter_than_minimum_is_one_chunk(self, chunker):
        pieces = chunker.chunk_bytes(b"short")
        assert len(pieces) == 1
        assert pieces[0].offset == 0
        assert pieces[0].data == b"short"

    def test_chunks_cover_input_exactly(self, chunker, random_bytes):
        data = random_bytes(50_000, seed=1)
        pieces = chunker.chunk_bytes(data)

        assert joined(pieces) == data
        offset = 0
        for piece in pieces:
            assert piece.offset == offset
            offset += piece.length
        assert offset == len(data)

    def test_chunk_sizes_respect_bounds(self, chunker, random_bytes):
        pieces = chunker.chunk_bytes(random_bytes(80_000, seed=2))

        assert len(pieces) > 10
        for piece in pieces[:-1]:
            assert chunker.min_size <= piece.length <= chunker.max_size
        assert 0 < pieces[-1].length <= chunker.max_size

    def test_chunking_is_deterministic(self, chunker, random_bytes):
        data = random_bytes(30_000, seed=3)
        first = [(p.offset, p.length) for p in chunker.chunk_bytes(data)]
        second = [(p.offset, p.length) for p in chunker.chunk_bytes(data)]
        assert first == second

    def test_read_block_size_does_not_change_boundaries(self, random_bytes):
        data = random_bytes(40_000, seed=4)
        small_reads = Chunker(256, 4096, 8, 32, read_block_size=7)
        large_reads = Chunker(256, 4096, 8, 32, read_block_size=1 << 20)

        small = [(p.offset, p.length) for p in small_reads.iter_chunks(BytesIO(data))]
        large = [(p.offset, p.length) for p in large_reads.iter_chunks(BytesIO(data))]
        assert small == large

    def test_iter_boundaries_matches_chunks(self, chunker, random_bytes):
        data = random_bytes(20_000, seed=5)
        boundaries = list(chunker.iter_boundaries(BytesIO(data)))
        pieces = chunker.chunk_bytes(data)

        assert [(b.offset, b.length) for b in boundaries] == [(p.offset, p.length) for p in pieces]
        assert boundaries[-1].end == len(data)


class TestBoundarySelection:
    """Tests for where cuts are placed."""

    def test_zero_boundary_bits_cuts_at_minimum(self):
        chunker = Chunker(min_size=4, max_size=64, boundary_bits=0, window_size=4)
        pieces = chunker.chunk_bytes(b"AAAABBBBCCCC")
        assert [p.data for p in pieces] == [b"AAAA", b"BBBB", b"CCCC"]

    def test_cut_is_forced_at_max_size(self, random_bytes):
        # 31 zero bits essentially never occur in a few KiB.
        chunker = Chunker(min_size=64, max_size=512, boundary_bits=31, window_size=16)
        pieces = chunker.chunk_bytes(random_bytes(4096, seed=6))
        assert [p.length for p in pieces] == [512] * 8

    def test_cut_windows_have_zero_low_bits(self, chunker, random_bytes):
        pieces = chunker.chunk_bytes(random_bytes(60_000, seed=7))
        mask = (1 << chunker.boundary_bits) - 1

        for piece in pieces[:-1]:
            if piece.length == chunker.max_size:
                continue
            window = piece.data[-chunker.window_size:]
            assert chunker.window_hash(window) & mask == 0

    def test_cut_is_first_matching_window(self, random_bytes):
        chunker = Chunker(min_size=32, max_size=1024, boundary_bits=5, window_size=8)
        data = random_bytes(20_000, seed=8)
        mask = (1 << chunker.boundary_bits) - 1

        for piece in chunker.chunk_bytes(data):
            chunk_start = piece.offset
            expected = None
            for length in range(chunker.min_size, min(chunker.max_size, len(data) - chunk_start) + 1):
                end = chunk_start + length
                if chunker.window_hash(data[end - chunker.window_size:end]) & mask == 0:
                    expected = length
                    break
            if expected is None:
                expected = min(chunker.max_size, len(data) - chunk_start)
            assert piece.length == expected, piece.offset

    def test_byte_table_is_stable(self):
        assert len(BYTE_TABLE) == 256
        assert len(set(BYTE_TABLE)) == 256
        assert all(0 <= value < 2 ** 32 for value in BYTE_TABLE)


class TestEditLocality:
    """Small edits only change nearby chunks."""

    def test_insert_changes_only_nearby_chunks(self, chunker, random_bytes):
        original = random_bytes(64 * 1024, seed=8)
        middle = len(original) // 2
        edited = original[:middle] + b"inserted bytes" + original[middle:]

        before = {p.data for p in chunker.chunk_bytes(original)}
        after = chunker.chunk_bytes(edited)
        novel = [p for p in after if p.data not in before]

        assert len(after) > 50
        assert 1 <= len(novel) <= 6
        assert any(p.offset <= middle < p.offset + p.length for p in novel)

    def test_append_changes_only_tail(self, chunker, random_bytes):
        original = random_bytes(32 * 1024, seed=9)
        edited = original + b"appended tail"

        before = [p.data for p in chunker.chunk_bytes(original)]
        after = [p.data for p in chunker.chunk_bytes(edited)]

        assert after[:len(before) - 1] == before[:-1]


class TestChunkerValidation:
    """Tests for parameter validation and file input."""

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"min_size": 0},
            {"min_size": 512, "max_size": 256},
            {"boundary_bits": 32},
            {"boundary_bits": -1},
            {"window_size": 0},
            {"min_size": 16, "window_size": 32},
            {"read_block_size": 0},
        ],
    )
    def test_invalid_parameters_rejected(self, kwargs):
        params = {"min_size": 256, "max_size": 4096, "boundary_bits": 8, "window_size": 32}
        params.update(kwargs)
        with pytest.raises(ValueError):
            Chunker(**params)

    def test_chunk_file_is_restartable(self, chunker, write_file, random_bytes):
        path = write_file("data.bin", random_bytes(10_000, seed=10))
        first = [(p.offset, p.length) for p in chunker.chunk_file(path)]
        second = [(p.offset, p.length) for p in chunker.chunk_file(path)]
        assert first == second
        assert sum(length for _, length in first) == 10_000

    def test_chunk_file_missing_raises(self, chunker, tmp_path):
        with pytest.raises(FileNotFoundError):
            list(chunker.chunk_file(tmp_path / "missing.bin"))
