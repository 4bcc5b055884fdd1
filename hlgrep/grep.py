"""Parse ``grep -nH`` style output piped on stdin into match events."""

import logging
import re
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Tuple

from .chunk import Match

_log = logging.getLogger(__name__)

# PATH:LINE:... Also accepts `rg --vimgrep` (PATH:LINE:COL:...) and
# Windows drive letters, since the path is matched lazily up to the first
# ":<digits>:" pair.
_GREP_LINE_RE = re.compile(r"^(?P<path>.+?):(?P<line>\d+):")


def parse_grep_line(line: str) -> Optional[Match]:
    """Return the match described by one line of grep output, or ``None``."""
    m = _GREP_LINE_RE.match(line)
    if m is None:
        return None
    line_number = int(m.group("line"))
    if line_number == 0:
        return None
    return Match(path=Path(m.group("path")), line_number=line_number)


def grep_lines(stream: Iterable[str]) -> Iterator[Match]:
    """Yield a match for every parsable line; skip context lines and separators."""
    for raw in stream:
        line = raw.rstrip("\r\n")
        if not line:
            continue
        match = parse_grep_line(line)
        if match is None:
            _log.debug("skipping unparsable input line: %r", line[:120])
            continue
        yield match


def matches_per_file(matches: Iterable[Match]) -> Iterator[Tuple[Path, List[int]]]:
    """Group consecutive matches that share a path.

    grep prints every file contiguously, so a path change closes the group.
    """
    current: Optional[Path] = None
    numbers: List[int] = []
    for match in matches:
        if match.path != current:
            if current is not None and numbers:
                yield current, numbers
            current, numbers = match.path, []
        numbers.append(match.line_number)
    if current is not None and numbers:
        yield current, numbers
