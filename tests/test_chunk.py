"""Tests for chunk aggregation — windows, merging and clipping."""

from pathlib import Path

import pytest

from hlgrep.chunk import (
    Chunk,
    Window,
    aggregate_chunks,
    chunks_for_file,
    decode_lines,
    read_lines,
)
from hlgrep.errors import FileIOError

LINES_100 = tuple(f"line {i}" for i in range(1, 101))


def _ranges(chunks):
    return [(c.start, c.end) for c in chunks]


def _covered(chunks):
    return sum(c.line_count for c in chunks)


class TestWindow:

    def test_around_middle(self):
        assert Window.around(50, 6, 100) == Window(44, 56)

    def test_around_clips_to_file(self):
        assert Window.around(2, 6, 100) == Window(1, 8)
        assert Window.around(99, 6, 100) == Window(93, 100)

    def test_zero_context(self):
        assert Window.around(7, 0, 10) == Window(7, 7)


class TestAggregateChunks:
    """aggregate_chunks() over an in-memory file."""

    def test_overlapping_windows_merge(self):
        chunks = aggregate_chunks("a.txt", [10, 12, 50], LINES_100, 3, 6)
        assert _ranges(chunks) == [(4, 18), (44, 56)]
        assert chunks[0].matched_lines == (10, 12)
        assert chunks[1].matched_lines == (50,)

    def test_source_lines_follow_range(self):
        chunk = aggregate_chunks("a.txt", [50], LINES_100, 3, 6)[0]
        assert chunk.source_lines[0] == (44, "line 44")
        assert chunk.source_lines[-1] == (56, "line 56")
        assert len(chunk.source_lines) == chunk.line_count == 13

    def test_path_is_normalized(self):
        chunk = aggregate_chunks("dir/a.txt", [1], LINES_100, 0, 0)[0]
        assert chunk.path == Path("dir/a.txt")

    def test_empty_matches(self):
        assert aggregate_chunks("a.txt", [], LINES_100, 3, 6) == []

    def test_empty_file(self):
        assert aggregate_chunks("a.txt", [1], (), 3, 6) == []

    def test_clipped_at_file_start_and_end(self):
        chunks = aggregate_chunks("a.txt", [1, 100], LINES_100, 3, 6)
        assert _ranges(chunks) == [(1, 7), (94, 100)]

    def test_short_file_is_one_chunk(self):
        lines = ("a", "b", "c")
        chunks = aggregate_chunks("a.txt", [2], lines, 3, 6)
        assert _ranges(chunks) == [(1, 3)]

    def test_gap_within_twice_min_context_merges(self):
        # windows [8,12] and [15,19] leave 2 unshown lines, less than 2 * 2
        chunks = aggregate_chunks("a.txt", [10, 17], LINES_100, 2, 2)
        assert _ranges(chunks) == [(8, 19)]

    def test_gap_beyond_twice_min_context_splits(self):
        chunks = aggregate_chunks("a.txt", [10, 20], LINES_100, 2, 2)
        assert _ranges(chunks) == [(8, 12), (18, 22)]

    def test_gap_equal_to_twice_min_context_merges(self):
        # windows [7,13] and [16,22]: gap of 2 == 2 * min_context
        chunks = aggregate_chunks("a.txt", [10, 19], LINES_100, 1, 3)
        assert _ranges(chunks) == [(7, 22)]

    def test_max_context_clamped_to_min_context(self):
        clamped = aggregate_chunks("a.txt", [50], LINES_100, 3, 1)
        assert _ranges(clamped) == [(47, 53)]

    def test_unsorted_and_duplicate_numbers(self):
        chunks = aggregate_chunks("a.txt", [12, 10, 10, 50], LINES_100, 3, 6)
        assert _ranges(chunks) == [(4, 18), (44, 56)]
        assert chunks[0].matched_lines == (10, 12)

    def test_out_of_range_matches_dropped(self):
        lines = tuple(str(i) for i in range(10))
        chunks = aggregate_chunks("a.txt", [0, 5, 11, 200], lines, 0, 0)
        assert _ranges(chunks) == [(5, 5)]

    def test_is_matched(self):
        chunk = aggregate_chunks("a.txt", [10, 12], LINES_100, 3, 6)[0]
        assert chunk.is_matched(10)
        assert chunk.is_matched(12)
        assert not chunk.is_matched(11)
        assert not chunk.is_matched(4)


class TestZeroContext:
    """min_context = max_context = 0 keeps exactly the matched lines."""

    def test_consecutive_lines_merge(self):
        chunks = aggregate_chunks("a.txt", [5, 6, 7], LINES_100, 0, 0)
        assert _ranges(chunks) == [(5, 7)]

    def test_non_consecutive_lines_split(self):
        chunks = aggregate_chunks("a.txt", [5, 7], LINES_100, 0, 0)
        assert _ranges(chunks) == [(5, 5), (7, 7)]

    def test_identical_lines_collapse(self):
        chunks = aggregate_chunks("a.txt", [5, 5], LINES_100, 0, 0)
        assert _ranges(chunks) == [(5, 5)]
        assert chunks[0].matched_lines == (5,)


class TestAggregationProperties:
    """Invariants over a spread of match sets and context bounds."""

    MATCH_SETS = [
        [1],
        [100],
        [1, 2, 3],
        [10, 12, 50],
        [5, 20, 21, 40, 60, 61, 62, 95, 100],
        list(range(1, 101, 7)),
        list(range(3, 101, 13)),
    ]
    BOUNDS = [(0, 0), (0, 3), (1, 1), (2, 5), (3, 6), (5, 5), (10, 20)]

    @pytest.mark.parametrize("matches", MATCH_SETS)
    @pytest.mark.parametrize("bounds", BOUNDS)
    def test_chunks_ordered_disjoint_and_clipped(self, matches, bounds):
        chunks = aggregate_chunks("a.txt", matches, LINES_100, *bounds)
        for chunk in chunks:
            assert 1 <= chunk.start <= chunk.end <= 100
            assert chunk.matched_lines
            assert all(chunk.start <= n <= chunk.end for n in chunk.matched_lines)
        for before, after in zip(chunks, chunks[1:]):
            assert before.end < after.start

    @pytest.mark.parametrize("matches", MATCH_SETS)
    @pytest.mark.parametrize("bounds", BOUNDS)
    def test_every_match_in_exactly_one_chunk(self, matches, bounds):
        chunks = aggregate_chunks("a.txt", matches, LINES_100, *bounds)
        found = [n for c in chunks for n in c.matched_lines]
        assert found == sorted(set(matches))

    @pytest.mark.parametrize("matches", MATCH_SETS)
    @pytest.mark.parametrize("min_context", [0, 1, 3])
    def test_growing_max_context_never_loses_coverage(self, matches, min_context):
        previous = None
        for max_context in range(min_context, min_context + 8):
            chunks = aggregate_chunks("a.txt", matches, LINES_100, min_context, max_context)
            if previous is not None:
                assert _covered(chunks) >= _covered(previous)
                assert len(chunks) <= len(previous)
            previous = chunks


class TestDecodeLines:

    def test_trailing_newline_does_not_add_line(self):
        assert decode_lines(b"a\nb\n") == ("a", "b")

    def test_missing_trailing_newline(self):
        assert decode_lines(b"a\nb") == ("a", "b")

    def test_crlf(self):
        assert decode_lines(b"a\r\nb\r\n") == ("a", "b")

    def test_empty_lines_kept(self):
        assert decode_lines(b"a\n\n\nb\n") == ("a", "", "", "b")

    def test_tabs_kept(self):
        assert decode_lines(b"\tfoo\n") == ("\tfoo",)

    def test_invalid_utf8_replaced(self):
        assert decode_lines(b"caf\xe9\n") == ("caf�",)

    def test_empty(self):
        assert decode_lines(b"") == ()


class TestChunksForFile:

    def test_reads_file(self, write_file):
        path = write_file("a.py", count=30)
        result = chunks_for_file(path, [15], 3, 6)
        assert result.path == path
        assert len(result.lines) == 30
        assert len(result.chunks) == 1
        assert isinstance(result.chunks[0], Chunk)
        assert (result.chunks[0].start, result.chunks[0].end) == (9, 21)

    def test_uses_given_lines(self, tmp_dir):
        result = chunks_for_file(tmp_dir / "missing.py", [2], 0, 0, lines=["a", "b", "c"])
        assert result.chunks[0].source_lines == ((2, "b"),)

    def test_missing_file_raises(self, tmp_dir):
        with pytest.raises(FileIOError) as exc_info:
            read_lines(tmp_dir / "missing.py")
        assert "missing.py" in str(exc_info.value)
        assert exc_info.value.path.endswith("missing.py")
