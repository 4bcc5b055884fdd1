"""Printer contract shared by every rendering backend.

A printer turns a ``MatchedFile`` into one formatted text block and writes it
to the shared ``OutputSink`` exactly once, so snippets of one file always
come out contiguously even when many files are rendered concurrently.
"""

from __future__ import annotations

import sys
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional, Sequence, TextIO

from rich.cells import cell_len
from rich.text import Text

from .chunk import Chunk, MatchedFile
from .errors import ConfigurationError, RenderError

# Option name -> CLI flag, for options a backend may not support.
OPTIONAL_FEATURES = {
    "background_color": "--background",
    "ascii_lines": "--ascii-lines",
}


class TextWrapMode(Enum):
    CHAR = "char"
    NEVER = "never"

    @classmethod
    def parse(cls, value: str) -> "TextWrapMode":
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ConfigurationError("--wrap", f"unknown text-wrapping mode {value!r}, must be 'char' or 'never'")


@dataclass(frozen=True)
class PrinterOptions:
    """Formatting options, fixed for the whole run and shared read-only."""

    tab_width: int = 4
    theme: Optional[str] = None
    grid: bool = True
    term_width: int = 80
    text_wrap: TextWrapMode = TextWrapMode.CHAR
    first_only: bool = False
    background_color: bool = False
    ascii_lines: bool = False


class OutputSink:
    """Serialized text output shared by every render call."""

    def __init__(self, stream: Optional[TextIO] = None):
        self._stream = stream if stream is not None else sys.stdout
        self._lock = threading.Lock()

    def write(self, block: str, path=None) -> None:
        with self._lock:
            try:
                self._stream.write(block)
                self._stream.flush()
            except (OSError, UnicodeError) as e:
                raise RenderError(path, f"could not write output: {e}") from e


class Printer(ABC):
    """Rendering backend. Subclasses declare which optional features they honour."""

    name: str = "printer"
    SUPPORTED_FEATURES: frozenset = frozenset()

    def __init__(self, options: PrinterOptions, sink: Optional[OutputSink] = None):
        self.options = options
        self.sink = sink if sink is not None else OutputSink()
        self._check_options()

    def supports(self, option: str) -> bool:
        return option in self.SUPPORTED_FEATURES

    def _check_options(self) -> None:
        for option, flag in OPTIONAL_FEATURES.items():
            if getattr(self.options, option) and not self.supports(option):
                raise ConfigurationError(
                    flag, f"{flag} is not available with the {self.name} printer"
                )

    def print(self, file: MatchedFile) -> bool:
        """Render a file's chunks and write them out. Returns ``True`` if anything was printed."""
        chunks = file.chunks[:1] if self.options.first_only else file.chunks
        if not chunks:
            return False
        block = self.render(file, chunks)
        self.sink.write(block, file.path)
        return True

    @abstractmethod
    def render(self, file: MatchedFile, chunks: Sequence[Chunk]) -> str:
        """Return the formatted text for ``chunks`` of ``file``."""

    @abstractmethod
    def themes(self) -> List[str]:
        """Names accepted by the ``theme`` option."""

    @abstractmethod
    def list_themes(self) -> None:
        """Write every theme name with a sample snippet to the sink."""


def expand_tabs(line: Text, tab_width: int) -> Text:
    """Replace tabs with spaces up to the next multiple of ``tab_width``.

    ``tab_width=0`` leaves tabs untouched. Styles are carried onto the spaces.
    """
    if tab_width <= 0 or "\t" not in line.plain:
        return line
    expanded = line.copy()
    expanded.expand_tabs(tab_width)
    return expanded


def wrap_line(line: Text, width: int) -> List[Text]:
    """Hard-wrap ``line`` at character boundaries into pieces of at most ``width`` cells.

    Span styles are split with the text, so a token cut by a wrap keeps its
    style on the continuation piece. A character wider than ``width`` is put
    on a piece of its own.
    """
    if width <= 0 or cell_len(line.plain) <= width:
        return [line]
    offsets: List[int] = []
    column = 0
    for index, char in enumerate(line.plain):
        char_width = cell_len(char)
        if column + char_width > width and column > 0:
            offsets.append(index)
            column = 0
        column += char_width
    return list(line.divide(offsets))


def gutter_width(chunks: Iterable[Chunk]) -> int:
    """Digits needed for the largest line number among ``chunks``."""
    last = max((c.end for c in chunks), default=1)
    return len(str(last))
