"""Chunk aggregation: turn one file's match lines into context-padded snippets.

Each match owns a maximal window of ``max_context`` lines on either side,
clipped to the file. Windows are folded left to right into a running chunk;
a window joins the running chunk when the lines separating them would not
leave at least ``min_context`` lines of context for each side.
"""

from __future__ import annotations

import logging
from bisect import bisect_left
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Sequence, Tuple, Union

from .errors import FileIOError

_log = logging.getLogger(__name__)

PathLike = Union[str, Path]


@dataclass(frozen=True)
class Match:
    """One matched line reported by a match source (1-based)."""

    path: Path
    line_number: int


@dataclass(frozen=True)
class Window:
    """Inclusive line range around a single match."""

    start: int
    end: int

    @classmethod
    def around(cls, line_number: int, context: int, line_count: int) -> "Window":
        return cls(max(1, line_number - context), min(line_count, line_number + context))


@dataclass(frozen=True)
class Chunk:
    """A contiguous snippet of a file containing at least one matched line."""

    path: Path
    start: int
    end: int
    matched_lines: Tuple[int, ...]
    source_lines: Tuple[Tuple[int, str], ...]

    @property
    def line_count(self) -> int:
        return self.end - self.start + 1

    def is_matched(self, line_number: int) -> bool:
        i = bisect_left(self.matched_lines, line_number)
        return i < len(self.matched_lines) and self.matched_lines[i] == line_number


@dataclass(frozen=True)
class MatchedFile:
    """A file's full text together with the chunks found in it."""

    path: Path
    lines: Tuple[str, ...]
    chunks: Tuple[Chunk, ...]


def decode_lines(data: bytes) -> Tuple[str, ...]:
    """Split raw file contents into lines the way grep numbers them.

    Only ``\\n`` separates lines; a trailing ``\\r`` is dropped so CRLF files
    render cleanly. A final newline does not open an extra empty line.
    """
    text = data.decode("utf-8", errors="replace")
    lines = text.split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    return tuple(line[:-1] if line.endswith("\r") else line for line in lines)


def read_lines(path: PathLike) -> Tuple[str, ...]:
    try:
        with open(path, "rb") as f:
            data = f.read()
    except OSError as e:
        raise FileIOError(path, e.strerror or str(e)) from e
    return decode_lines(data)


def aggregate_chunks(
    path: PathLike,
    line_numbers: Iterable[int],
    lines: Sequence[str],
    min_context: int,
    max_context: int,
) -> List[Chunk]:
    """Fold match line numbers of one file into ordered, non-overlapping chunks.

    Args:
        path: File the line numbers belong to.
        line_numbers: 1-based matched lines. Duplicates are collapsed and the
            numbers are processed in increasing order.
        lines: Full contents of the file, one entry per line.
        min_context: Context each side must keep before two snippets may be
            printed separately.
        max_context: Largest context attached to either side of a match.

    Returns:
        Chunks with ``end_i < start_{i+1}``, all clipped to ``[1, len(lines)]``.
    """
    path = Path(path)
    line_count = len(lines)
    max_context = max(min_context, max_context)
    merge_gap = 2 * min_context

    chunks: List[Chunk] = []
    current: Window | None = None
    matched: List[int] = []

    for line_number in sorted(set(line_numbers)):
        if line_number < 1 or line_number > line_count:
            _log.debug("%s: dropping match at line %d (file has %d lines)", path, line_number, line_count)
            continue

        window = Window.around(line_number, max_context, line_count)
        if current is None:
            current, matched = window, [line_number]
            continue

        gap = window.start - current.end - 1
        if gap <= merge_gap:
            current = Window(current.start, max(current.end, window.end))
            matched.append(line_number)
        else:
            chunks.append(_make_chunk(path, current, matched, lines))
            current, matched = window, [line_number]

    if current is not None:
        chunks.append(_make_chunk(path, current, matched, lines))
    return chunks


def chunks_for_file(
    path: PathLike,
    line_numbers: Iterable[int],
    min_context: int,
    max_context: int,
    lines: Sequence[str] | None = None,
) -> MatchedFile:
    """Read ``path`` (unless ``lines`` is given) and aggregate its matches."""
    path = Path(path)
    if lines is None:
        lines = read_lines(path)
    lines = tuple(lines)
    chunks = aggregate_chunks(path, line_numbers, lines, min_context, max_context)
    return MatchedFile(path=path, lines=lines, chunks=tuple(chunks))


def _make_chunk(path: Path, window: Window, matched: List[int], lines: Sequence[str]) -> Chunk:
    source = tuple((n, lines[n - 1]) for n in range(window.start, window.end + 1))
    return Chunk(
        path=path,
        start=window.start,
        end=window.end,
        matched_lines=tuple(matched),
        source_lines=source,
    )
