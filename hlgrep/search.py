"""Built-in search: walk paths, match a regex per file, honour a global match budget."""

from __future__ import annotations

import fnmatch
import logging
import os
import re
import threading
from bisect import bisect_right
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from pygments.lexers import get_all_lexers

from .chunk import decode_lines
from .errors import ConfigurationError, FileIOError

_log = logging.getLogger(__name__)

SKIP_DIRS = {
    ".git", ".svn", ".hg", ".bzr", ".venv", "venv",
    "node_modules", "__pycache__", ".mypy_cache",
    ".pytest_cache", ".tox", ".next", ".nuxt", ".cache",
}
BINARY_SNIFF_BYTES = 8192
_SIZE_RE = re.compile(r"^\s*(\d+)\s*([KMG]?)\s*$", re.IGNORECASE)
_SIZE_UNITS = {"": 1, "K": 1024, "M": 1024 ** 2, "G": 1024 ** 3}


class MatchBudget:
    """Thread-safe cap on the number of matches accepted across the whole run.

    The budget is shared by every worker: once it is spent, no further match
    is accepted in any file, including the rest of a file being searched.
    ``limit=None`` means unlimited.
    """

    def __init__(self, limit: Optional[int] = None):
        self.limit = limit
        self._remaining = limit
        self._lock = threading.Lock()

    @property
    def unlimited(self) -> bool:
        return self.limit is None

    @property
    def remaining(self) -> Optional[int]:
        with self._lock:
            return self._remaining

    def is_exhausted(self) -> bool:
        if self.limit is None:
            return False
        with self._lock:
            return self._remaining <= 0

    def try_take(self) -> bool:
        """Accept one match. Returns ``False`` once the budget is spent."""
        if self.limit is None:
            return True
        with self._lock:
            if self._remaining <= 0:
                return False
            self._remaining -= 1
            return True


@dataclass(frozen=True)
class SearchConfig:
    pattern: str
    paths: Tuple[str, ...] = (".",)
    case_insensitive: bool = False
    smart_case: bool = False
    fixed_strings: bool = False
    word_regexp: bool = False
    line_regexp: bool = False
    invert_match: bool = False
    multiline: bool = False
    multiline_dotall: bool = False
    hidden: bool = False
    no_ignore: bool = False
    follow_symlinks: bool = False
    globs: Tuple[str, ...] = ()
    glob_case_insensitive: bool = False
    max_depth: Optional[int] = None
    max_filesize: Optional[int] = None
    types: Tuple[str, ...] = ()
    types_not: Tuple[str, ...] = ()


def parse_filesize(value: str) -> int:
    """Parse ``NUM`` with an optional ``K``/``M``/``G`` suffix into bytes."""
    m = _SIZE_RE.match(value or "")
    if m is None:
        raise ConfigurationError("--max-filesize", f"could not parse {value!r} as file size")
    return int(m.group(1)) * _SIZE_UNITS[m.group(2).upper()]


def build_regex(config: SearchConfig) -> re.Pattern:
    pattern = re.escape(config.pattern) if config.fixed_strings else config.pattern
    if config.word_regexp:
        pattern = rf"\b(?:{pattern})\b"
    if config.line_regexp:
        pattern = rf"^(?:{pattern})$"

    flags = re.MULTILINE
    ignore_case = config.case_insensitive
    if config.smart_case and not any(c.isupper() for c in config.pattern):
        ignore_case = True
    if ignore_case:
        flags |= re.IGNORECASE
    if config.multiline and config.multiline_dotall:
        flags |= re.DOTALL

    try:
        return re.compile(pattern, flags)
    except re.error as e:
        raise ConfigurationError("PATTERN", f"invalid regular expression {config.pattern!r}: {e}") from e


class _GlobFilter:
    """Include/exclude globs; a leading ``!`` excludes."""

    def __init__(self, globs: Sequence[str], case_insensitive: bool):
        self.case_insensitive = case_insensitive
        self.includes = [self._norm(g) for g in globs if not g.startswith("!")]
        self.excludes = [self._norm(g[1:]) for g in globs if g.startswith("!")]

    def _norm(self, value: str) -> str:
        return value.lower() if self.case_insensitive else value

    def _matches(self, globs: List[str], rel: str) -> bool:
        rel = self._norm(rel)
        name = rel.rsplit("/", 1)[-1]
        return any(fnmatch.fnmatchcase(rel, g) or fnmatch.fnmatchcase(name, g) for g in globs)

    def excluded(self, rel: str) -> bool:
        return bool(self.excludes) and self._matches(self.excludes, rel)

    def accepts_file(self, rel: str) -> bool:
        if self.excluded(rel):
            return False
        return not self.includes or self._matches(self.includes, rel)


@lru_cache(maxsize=1)
def file_types() -> Dict[str, Tuple[str, ...]]:
    """File type name -> file name globs, built from the pygments lexer registry.

    Every alias of a lexer names the same type, so ``py`` and ``python``
    select the same files.
    """
    types: Dict[str, List[str]] = {}
    for _name, aliases, filenames, _mimetypes in get_all_lexers():
        for alias in aliases if filenames else ():
            known = types.setdefault(alias, [])
            known.extend(g for g in filenames if g not in known)
    return {name: tuple(globs) for name, globs in types.items()}


def format_type_list() -> str:
    """One ``name: glob, glob`` line per lexer, using its first alias as the name."""
    lines = []
    seen = set()
    for _name, aliases, filenames, _mimetypes in get_all_lexers():
        if not aliases or not filenames or aliases[0] in seen:
            continue
        seen.add(aliases[0])
        lines.append(f"{aliases[0]}: {', '.join(file_types()[aliases[0]])}")
    return "\n".join(sorted(lines)) + "\n"


class _TypeFilter:
    """``--type`` selects files, ``--type-not`` rejects them; unknown names are an error."""

    def __init__(self, types: Sequence[str], types_not: Sequence[str]):
        self.selected = self._globs(types, "--type")
        self.negated = self._globs(types_not, "--type-not")
        self.active = bool(types)

    @staticmethod
    def _globs(names: Sequence[str], flag: str) -> List[str]:
        if not names:
            return []
        table = file_types()
        globs: List[str] = []
        for name in names:
            if name not in table:
                raise ConfigurationError(flag, f"unrecognized file type {name!r}. Use --type-list to see supported types")
            globs.extend(table[name])
        return globs

    def accepts_file(self, name: str) -> bool:
        if any(fnmatch.fnmatchcase(name, g) for g in self.negated):
            return False
        return not self.active or any(fnmatch.fnmatchcase(name, g) for g in self.selected)


def walk(config: SearchConfig) -> List[Path]:
    """Collect the files to search, in a stable order.

    Explicitly named files are always searched. Directories are walked
    skipping hidden entries (unless ``hidden``) and well-known VCS/tool
    directories (unless ``no_ignore``).
    """
    globs = _GlobFilter(config.globs, config.glob_case_insensitive)
    types = _TypeFilter(config.types, config.types_not)
    files: List[Path] = []

    for root in config.paths:
        root_path = Path(root)
        if root_path.is_file():
            files.append(root_path)
            continue
        if not root_path.is_dir():
            raise FileIOError(root_path, "No such file or directory")

        for dirpath, dirnames, filenames in os.walk(root_path, followlinks=config.follow_symlinks):
            current = Path(dirpath)
            rel_dir = current.relative_to(root_path)
            depth = len(rel_dir.parts)

            if config.max_depth is not None and depth + 1 >= config.max_depth:
                dirnames[:] = []
            else:
                dirnames[:] = sorted(
                    d for d in dirnames
                    if _keep_entry(d, config)
                    and (config.no_ignore or d not in SKIP_DIRS)
                    and not globs.excluded((rel_dir / d).as_posix())
                )

            if config.max_depth is not None and depth + 1 > config.max_depth:
                continue
            for name in sorted(filenames):
                if not _keep_entry(name, config):
                    continue
                if not globs.accepts_file((rel_dir / name).as_posix()) or not types.accepts_file(name):
                    continue
                path = current / name
                if config.max_filesize is not None and _file_size(path) > config.max_filesize:
                    _log.debug("skipping %s: larger than %d bytes", path, config.max_filesize)
                    continue
                files.append(path)
    return files


def search_file(
    path: Path,
    regex: re.Pattern,
    config: SearchConfig,
    budget: MatchBudget,
) -> Tuple[Tuple[str, ...], List[int]]:
    """Search one file.

    Returns the file's lines and the matched line numbers. A multi-line match
    contributes one line number per covered line. Binary files yield no lines.
    """
    try:
        with open(path, "rb") as f:
            data = f.read()
    except OSError as e:
        raise FileIOError(path, e.strerror or str(e)) from e

    if b"\0" in data[:BINARY_SNIFF_BYTES]:
        _log.debug("skipping binary file %s", path)
        return (), []

    lines = decode_lines(data)
    if config.multiline:
        return lines, _search_multiline(lines, regex, config.invert_match, budget)

    matched: List[int] = []
    for line_number, line in enumerate(lines, 1):
        if bool(regex.search(line)) == config.invert_match:
            continue
        if not budget.try_take():
            _log.info("match budget spent while searching %s", path)
            break
        matched.append(line_number)
    return lines, matched


def _search_multiline(
    lines: Sequence[str], regex: re.Pattern, invert: bool, budget: MatchBudget
) -> List[int]:
    text = "\n".join(lines)
    line_starts = [0] + [m.end() for m in re.finditer("\n", text)]

    def line_of(offset: int) -> int:
        return bisect_right(line_starts, offset)

    covered: List[int] = []
    last = 0
    for m in regex.finditer(text):
        first = line_of(m.start())
        final = line_of(max(m.start(), m.end() - 1))
        if final <= last:
            continue
        if not invert and not budget.try_take():
            break
        covered.extend(range(max(first, last + 1), final + 1))
        last = final

    if not invert:
        return covered

    hit = set(covered)
    result: List[int] = []
    for line_number in range(1, len(lines) + 1):
        if line_number in hit:
            continue
        if not budget.try_take():
            break
        result.append(line_number)
    return result


def _keep_entry(name: str, config: SearchConfig) -> bool:
    return config.hidden or not name.startswith(".")


def _file_size(path: Path) -> int:
    try:
        return path.stat().st_size
    except OSError:
        return 0
