"""In-process printer: pygments tokenization rendered through rich styles."""

import io
import logging
import os
import re
import threading
from dataclasses import replace
from typing import Dict, List, Optional, Sequence

from pygments.lexer import Lexer
from pygments.lexers import get_lexer_for_filename, guess_lexer
from pygments.lexers.special import TextLexer
from pygments.styles import get_all_styles, get_style_by_name
from pygments.util import ClassNotFound
from rich.color import ColorParseError, ColorSystem
from rich.console import Console
from rich.style import Style
from rich.syntax import RICH_SYNTAX_THEMES, ANSISyntaxTheme
from rich.text import Text

from .chunk import Chunk, MatchedFile, aggregate_chunks
from .errors import ConfigurationError
from .printer import (
    OPTIONAL_FEATURES,
    Printer,
    PrinterOptions,
    OutputSink,
    TextWrapMode,
    expand_tabs,
    gutter_width,
    wrap_line,
)
from .themes import Palette, palette_for_background

_log = logging.getLogger(__name__)

DEFAULT_THEME = "monokai"

# Keep pygments from touching leading/trailing newlines so line numbers stay aligned.
_LEXER_OPTIONS = {"stripnl": False, "stripall": False, "ensurenl": True}

_COLOR_SYSTEMS = {
    "standard": ColorSystem.STANDARD,
    "256": ColorSystem.EIGHT_BIT,
    "truecolor": ColorSystem.TRUECOLOR,
    "windows": ColorSystem.WINDOWS,
}

# pygments resolves lexers through module-level caches and lazy imports
_lexer_lock = threading.Lock()

BOX_DRAWING = {"h": "─", "v": "│", "top": "┬", "mid": "┼", "bottom": "┴", "mark": "▶"}
ASCII_DRAWING = {"h": "-", "v": "|", "top": "+", "mid": "+", "bottom": "+", "mark": ">"}

THEME_SAMPLE_PATH = "sample.rs"
THEME_SAMPLE_LINES = (
    "// Compute the sum of even numbers",
    "fn main() {",
    "    let mut total = 0;",
    "    for n in 1..=10 {",
    "        if n % 2 == 0 {",
    "            total += n;",
    "        }",
    "    }",
    "    let message = format!(\"sum of evens: {}\", total);",
    "    println!(\"{}\", message);",
    "}",
)


def available_themes() -> List[str]:
    return sorted(set(get_all_styles()) | set(RICH_SYNTAX_THEMES))


def find_lexer(path, first_line: str = "") -> Lexer:
    """Pick a lexer by file name, then by shebang, falling back to plain text."""
    with _lexer_lock:
        try:
            return get_lexer_for_filename(str(path), **_LEXER_OPTIONS)
        except ClassNotFound:
            pass
        if first_line.startswith("#!"):
            try:
                return guess_lexer(first_line, **_LEXER_OPTIONS)
            except ClassNotFound:
                pass
    return TextLexer(**_LEXER_OPTIONS)


class TokenStyles:
    """Token type -> rich ``Style`` mapping for one syntax theme."""

    def __init__(self, theme: str, background: bool):
        self.theme = theme
        self.background = background
        self._cache: Dict = {}
        self._ansi: Optional[ANSISyntaxTheme] = None
        self._pygments = None

        if theme in RICH_SYNTAX_THEMES:
            self._ansi = ANSISyntaxTheme(RICH_SYNTAX_THEMES[theme])
            self.background_hint = "#ffffff" if theme == "ansi_light" else None
        else:
            try:
                self._pygments = get_style_by_name(theme)
            except ClassNotFound:
                raise ConfigurationError(
                    "--theme", f"unknown theme {theme!r}. Use --list-themes to see available themes"
                ) from None
            self.background_hint = self._pygments.background_color

    def for_token(self, token_type) -> Style:
        style = self._cache.get(token_type)
        if style is None:
            style = self._build(token_type)
            self._cache[token_type] = style
        return style

    def _build(self, token_type) -> Style:
        if self._ansi is not None:
            style = self._ansi.get_style_for_token(token_type)
            if self.background:
                return style
            return Style(color=style.color, bold=style.bold, italic=style.italic, underline=style.underline)

        spec = self._pygments.style_for_token(token_type)
        return Style(
            color=f"#{spec['color']}" if spec["color"] else None,
            bgcolor=f"#{spec['bgcolor']}" if self.background and spec["bgcolor"] else None,
            bold=spec["bold"] or None,
            italic=spec["italic"] or None,
            underline=spec["underline"] or None,
        )

    @property
    def background_style(self) -> Style:
        if not self.background or self._pygments is None:
            return Style.null()
        try:
            return Style(bgcolor=self._pygments.background_color)
        except ColorParseError:
            _log.warning("theme %s has an unusable background color", self.theme)
            return Style.null()


def highlight_lines(lines: Sequence[str], lexer: Lexer, styles: TokenStyles) -> List[Text]:
    """Tokenize ``lines`` as one document and return one styled ``Text`` per line.

    Falls back to unstyled lines if the lexer's output does not reproduce the
    input exactly (e.g. a stray ``\\r`` that pygments treats as a newline).
    """
    if not lines:
        return []
    result: List[Text] = []
    current = Text()
    for token_type, value in lexer.get_tokens("\n".join(lines)):
        style = styles.for_token(token_type)
        for index, part in enumerate(value.split("\n")):
            if index:
                result.append(current)
                current = Text()
            if part:
                current.append(part, style)
    result.append(current)

    result = result[:len(lines)]
    if len(result) != len(lines) or any(t.plain != line for t, line in zip(result, lines)):
        _log.debug("highlighter output diverged from source, printing %d lines unstyled", len(lines))
        return [Text(line) for line in lines]
    return result


class RichPrinter(Printer):
    """Highlights in-process; supports every optional feature."""

    name = "rich"
    SUPPORTED_FEATURES = frozenset(OPTIONAL_FEATURES)

    def __init__(self, options: PrinterOptions, sink: Optional[OutputSink] = None):
        super().__init__(options, sink)
        self.styles = TokenStyles(options.theme or DEFAULT_THEME, options.background_color)
        self.palette: Palette = palette_for_background(self.styles.background_hint)
        self.glyphs = ASCII_DRAWING if options.ascii_lines else BOX_DRAWING
        self._console = Console(
            file=io.StringIO(),
            force_terminal=True,
            width=options.term_width,
            highlight=False,
            markup=False,
            emoji=False,
        )
        if os.environ.get("NO_COLOR"):
            self._color_system = None
        else:
            self._color_system = _COLOR_SYSTEMS.get(self._console.color_system)

    def themes(self) -> List[str]:
        return available_themes()

    def list_themes(self) -> None:
        sample = theme_sample()
        for theme in self.themes():
            self.sink.write(self.to_ansi([Text(theme, style=Style(bold=True))]))
            RichPrinter(replace(self.options, theme=theme), self.sink).print(sample)
            self.sink.write("\n")

    # ── Composition ──

    def render(self, file: MatchedFile, chunks: Sequence[Chunk]) -> str:
        last = max(c.end for c in chunks)
        lines = file.lines[:last]
        lexer = find_lexer(file.path, lines[0] if lines else "")
        highlighted = highlight_lines(lines, lexer, self.styles)
        width = gutter_width(chunks)

        rows: List[Text] = self._header(file, width)
        for index, chunk in enumerate(chunks):
            if index:
                rows.append(self._separator(width))
            for line_number, _ in chunk.source_lines:
                rows.extend(
                    self._code_rows(highlighted[line_number - 1], line_number, chunk.is_matched(line_number), width)
                )
        rows.append(self._footer(width))
        return self.to_ansi(rows)

    def code_width(self, width: int) -> int:
        prefix = width + 4 if self.options.grid else width + 1
        return max(1, self.options.term_width - prefix)

    def _code_rows(self, line: Text, line_number: int, matched: bool, width: int) -> List[Text]:
        line = expand_tabs(line, self.options.tab_width)
        code_width = self.code_width(width)
        painted = self.options.background_color
        if painted:
            line = line.copy()
            line.style = self._line_background(matched)

        if self.options.text_wrap is TextWrapMode.CHAR:
            pieces = wrap_line(line, code_width)
        else:
            pieces = [line]

        rows = []
        for index, piece in enumerate(pieces):
            if painted and piece.cell_len < code_width:
                piece.pad_right(code_width - piece.cell_len)
            gutter = self._gutter(line_number if index == 0 else None, matched, width)
            rows.append(Text.assemble(gutter, piece))
        return rows

    def _line_background(self, matched: bool) -> Style:
        style = self.styles.background_style
        if matched:
            style = style + self.palette.style("MATCH_BACKGROUND")
        return style

    def _gutter(self, line_number: Optional[int], matched: bool, width: int) -> Text:
        """Line-number column. Matched lines carry a marker that survives ``NO_COLOR``:
        a leading glyph in the grid, ``:`` instead of ``-`` without it."""
        number_style = self.palette.style("MATCH_LINE_NUMBER" if matched else "LINE_NUMBER")
        if line_number is None:
            number = " " * width
        else:
            number = str(line_number).rjust(width)
        if self.options.grid:
            mark = self.glyphs["mark"] if matched and line_number is not None else " "
            return Text.assemble(
                (f"{mark}{number} ", number_style),
                (self.glyphs["v"], self.palette.style("BORDER")),
                " ",
            )
        if line_number is None:
            return Text(" " * (width + 1))
        return Text(number + (":" if matched else "-"), style=number_style)

    def _rule(self, joint: str, width: int) -> Text:
        h = self.glyphs["h"]
        rest = max(0, self.options.term_width - (width + 3))
        return Text(h * (width + 2) + self.glyphs[joint] + h * rest, style=self.palette.style("BORDER"))

    def _header(self, file: MatchedFile, width: int) -> List[Text]:
        path = Text(str(file.path), style=self.palette.style("HEADER"))
        if not self.options.grid:
            return [path]
        title = Text.assemble(
            " " * (width + 2),
            (self.glyphs["v"], self.palette.style("BORDER")),
            " ",
            path,
        )
        return [self._rule("top", width), title, self._rule("mid", width)]

    def _separator(self, width: int) -> Text:
        if self.options.grid:
            return self._rule("mid", width)
        return Text("--", style=self.palette.style("LINE_NUMBER"))

    def _footer(self, width: int) -> Text:
        if self.options.grid:
            return self._rule("bottom", width)
        return Text()

    def to_ansi(self, rows: Sequence[Text]) -> str:
        """Encode rows as ANSI text without letting rich re-wrap or expand tabs."""
        out: List[str] = []
        for row in rows:
            if row.style:
                # Text.render ignores the base style of a span-less Text
                row = Text.assemble(row)
            for segment in row.render(self._console):
                if segment.style and self._color_system is not None:
                    out.append(segment.style.render(segment.text, color_system=self._color_system))
                else:
                    out.append(segment.text)
            out.append("\n")
        return "".join(out)


def theme_sample() -> MatchedFile:
    """The fixed snippet shown under each theme name, with ``let`` searched."""
    lines = THEME_SAMPLE_LINES
    matched = [n for n, line in enumerate(lines, 1) if re.search(r"\blet\b", line)]
    chunks = aggregate_chunks(THEME_SAMPLE_PATH, matched, lines, 3, 6)
    return MatchedFile(path=chunks[0].path, lines=lines, chunks=tuple(chunks))
