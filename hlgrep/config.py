"""
Configuration — defaults, config files, environment and command line.

Loading priority (later wins):
  1. Built-in defaults
  2. First found of: project dir .hlgrep.yml, git root .hlgrep.yml, ~/.hlgrep/config.yml
  3. Environment: HLGREP_THEME, HLGREP_PRINTER, HLGREP_TAB, HLGREP_THREADS
  4. Command-line flags

.env files (~/.hlgrep/.env, then project .env) are loaded first and never
override variables already set in the process environment.
"""

import logging
import os
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple, Union

import yaml
from dotenv import load_dotenv

from .bat_printer import BatPrinter
from .errors import ConfigurationError
from .printer import OutputSink, Printer, PrinterOptions, TextWrapMode
from .rich_printer import RichPrinter

_log = logging.getLogger(__name__)

CONFIG_DIR = Path.home() / ".hlgrep"
CONFIG_FILE = CONFIG_DIR / "config.yml"
PROJECT_CONFIG_NAME = ".hlgrep.yml"

MIN_TERM_WIDTH = 10
PRINTERS = {"rich", "bat"}
TEXT_WRAP_MODES = {mode.value for mode in TextWrapMode}
# BAT_STYLE values that mean "no grid" for the bat printer
BAT_STYLE_NO_GRID = {"plain", "header", "numbers"}

PRINTER_CLASSES = {
    "rich": RichPrinter,
    "bat": BatPrinter,
}


# ── Configuration metadata and validation ──


@dataclass
class ConfigFieldSpec:
    """Configuration field specification with validation rules."""
    key: str
    field_name: str
    description: str
    default: Any
    validator: Optional[Callable[[Any], Tuple[bool, Any, str]]] = None  # (valid, coerced_value, error_msg)


def _validate_int_range(value: Any, min_val: int, max_val: int) -> Tuple[bool, int, str]:
    """Validate integer within range."""
    if isinstance(value, bool):
        return False, 0, "Must be an integer"
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return False, 0, "Must be an integer"
    if parsed < min_val or parsed > max_val:
        return False, max(min_val, min(max_val, parsed)), f"Must be between {min_val} and {max_val}"
    return True, parsed, ""


def _validate_optional_int(value: Any, min_val: int, max_val: int) -> Tuple[bool, Optional[int], str]:
    """Like ``_validate_int_range`` but ``None``/empty means unset."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return True, None, ""
    return _validate_int_range(value, min_val, max_val)


def _validate_enum(value: Any, valid_values: set) -> Tuple[bool, str, str]:
    """Validate value is in allowed set."""
    val_str = str(value).strip().lower()
    if val_str not in valid_values:
        return False, "", f"Must be one of: {', '.join(sorted(valid_values))}"
    return True, val_str, ""


def _validate_bool(value: Any) -> Tuple[bool, bool, str]:
    """Validate boolean value."""
    if isinstance(value, bool):
        return True, value, ""
    if isinstance(value, str):
        val_lower = value.strip().lower()
        if val_lower in ("1", "true", "yes", "on"):
            return True, True, ""
        if val_lower in ("0", "false", "no", "off"):
            return True, False, ""
    return False, False, "Must be true/false, yes/no, on/off, or 1/0"


def _validate_theme(value: Any) -> Tuple[bool, Optional[str], str]:
    """Theme names are checked against the printer's list once it is built."""
    if value is None:
        return True, None, ""
    name = str(value).strip()
    return True, name or None, ""


def _validate_log_file(value: Any) -> Tuple[bool, Union[bool, str], str]:
    """``true``/``false`` toggles the default log file; anything else is a path."""
    ok, flag, _ = _validate_bool(value)
    if ok:
        return True, flag, ""
    if isinstance(value, (str, Path)) and str(value).strip():
        return True, str(value).strip(), ""
    return False, False, "Must be a boolean or a file path"


# Configuration field registry with validation
CONFIG_FIELDS: Dict[str, ConfigFieldSpec] = {
    "min-context": ConfigFieldSpec(
        key="min-context",
        field_name="min_context",
        description="Minimum context lines kept around each match",
        default=3,
        validator=lambda v: _validate_int_range(v, 0, 1_000_000),
    ),
    "max-context": ConfigFieldSpec(
        key="max-context",
        field_name="max_context",
        description="Maximum context lines attached to either side of a match",
        default=6,
        validator=lambda v: _validate_int_range(v, 0, 1_000_000),
    ),
    "tab": ConfigFieldSpec(
        key="tab",
        field_name="tab_width",
        description="Tab width in spaces; 0 prints tabs as-is",
        default=4,
        validator=lambda v: _validate_int_range(v, 0, 128),
    ),
    "theme": ConfigFieldSpec(
        key="theme",
        field_name="theme",
        description="Syntax highlighting theme",
        default=None,
        validator=_validate_theme,
    ),
    "grid": ConfigFieldSpec(
        key="grid",
        field_name="grid",
        description="Draw borders and a line-number gutter",
        default=True,
        validator=_validate_bool,
    ),
    "term-width": ConfigFieldSpec(
        key="term-width",
        field_name="term_width",
        description="Output width in columns; defaults to the terminal width",
        default=None,
        validator=lambda v: _validate_optional_int(v, 0, 100_000),
    ),
    "wrap": ConfigFieldSpec(
        key="wrap",
        field_name="text_wrap",
        description="Text wrapping: char or never",
        default="char",
        validator=lambda v: _validate_enum(v, TEXT_WRAP_MODES),
    ),
    "first-only": ConfigFieldSpec(
        key="first-only",
        field_name="first_only",
        description="Print only the first snippet of each file",
        default=False,
        validator=_validate_bool,
    ),
    "background": ConfigFieldSpec(
        key="background",
        field_name="background_color",
        description="Paint the theme's background color",
        default=False,
        validator=_validate_bool,
    ),
    "ascii-lines": ConfigFieldSpec(
        key="ascii-lines",
        field_name="ascii_lines",
        description="Draw borders with ASCII characters",
        default=False,
        validator=_validate_bool,
    ),
    "printer": ConfigFieldSpec(
        key="printer",
        field_name="printer",
        description="Rendering backend: rich or bat",
        default="rich",
        validator=lambda v: _validate_enum(v, PRINTERS),
    ),
    "max-count": ConfigFieldSpec(
        key="max-count",
        field_name="max_count",
        description="Stop after this many matches across all files",
        default=None,
        validator=lambda v: _validate_optional_int(v, 0, 2 ** 63 - 1),
    ),
    "threads": ConfigFieldSpec(
        key="threads",
        field_name="threads",
        description="Worker threads; 0 uses the CPU count",
        default=0,
        validator=lambda v: _validate_int_range(v, 0, 1024),
    ),
    "verbose": ConfigFieldSpec(
        key="verbose",
        field_name="verbose",
        description="Enable informational logs on stderr",
        default=False,
        validator=_validate_bool,
    ),
    "log-file": ConfigFieldSpec(
        key="log-file",
        field_name="log_file",
        description="Also log to a rotating file (true for ~/.hlgrep/logs/hlgrep.log, or a path)",
        default=False,
        validator=_validate_log_file,
    ),
}

_FIELDS_BY_NAME: Dict[str, ConfigFieldSpec] = {spec.field_name: spec for spec in CONFIG_FIELDS.values()}


def validate_config_value(key: str, value: Any) -> Tuple[bool, Any, str]:
    """
    Validate a configuration value.

    Returns:
        (is_valid, coerced_value, error_message)
    """
    if key not in CONFIG_FIELDS:
        return False, value, f"Unknown configuration key: {key}"
    spec = CONFIG_FIELDS[key]
    if spec.validator:
        return spec.validator(value)
    return True, value, ""


def _default(key: str) -> Any:
    return CONFIG_FIELDS[key].default


@dataclass
class Config:
    min_context: int = _default("min-context")
    max_context: int = _default("max-context")
    tab_width: int = _default("tab")
    theme: Optional[str] = _default("theme")
    grid: bool = _default("grid")
    term_width: Optional[int] = _default("term-width")
    text_wrap: str = _default("wrap")
    first_only: bool = _default("first-only")
    background_color: bool = _default("background")
    ascii_lines: bool = _default("ascii-lines")
    printer: str = _default("printer")
    max_count: Optional[int] = _default("max-count")
    threads: int = _default("threads")
    verbose: bool = _default("verbose")
    log_file: Union[bool, str] = _default("log-file")
    project_root: Optional[str] = None
    _config_source: str = ""
    _theme_from_cli: bool = False

    @classmethod
    def load(cls, project_dir: str = ".") -> "Config":
        config = cls()
        project_path = Path(project_dir).resolve()

        for env_path in [CONFIG_DIR / ".env", project_path / ".env"]:
            if env_path.exists():
                load_dotenv(env_path, override=False)

        git_root = cls._find_git_root(project_path)
        for candidate in [
            project_path / PROJECT_CONFIG_NAME,
            (git_root / PROJECT_CONFIG_NAME) if git_root and git_root != project_path else None,
            CONFIG_FILE,
        ]:
            if candidate and candidate.exists():
                config._load_yaml(candidate)
                config._config_source = str(candidate)
                break

        config._apply_env()
        config.project_root = str(project_path)
        return config

    def _load_yaml(self, filepath: Path):
        try:
            with open(filepath) as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(str(filepath), f"could not read config file: {e}") from e
        if not isinstance(data, dict):
            raise ConfigurationError(str(filepath), "config file must contain a mapping")

        for key, value in data.items():
            if key not in CONFIG_FIELDS:
                _log.warning("%s: ignoring unknown key %r", filepath, key)
                continue
            self.set_config_value(key, value, source=str(filepath))

    def _apply_env(self):
        env_map = {
            "HLGREP_THEME": "theme",
            "HLGREP_PRINTER": "printer",
            "HLGREP_TAB": "tab",
            "HLGREP_THREADS": "threads",
        }
        for env_var, key in env_map.items():
            val = os.environ.get(env_var)
            if val:
                self.set_config_value(key, val, source=env_var)

    def set_config_value(self, key: str, value: Any, source: str = "") -> None:
        """Validate and store one value. Invalid values raise ``ConfigurationError``."""
        is_valid, coerced_value, error_msg = validate_config_value(key, value)
        if not is_valid:
            where = f"{key} in {source}" if source else key
            spec = CONFIG_FIELDS.get(key)
            what = f" ({spec.description})" if spec else ""
            raise ConfigurationError(where, f"invalid value {value!r}{what}: {error_msg}")
        setattr(self, CONFIG_FIELDS[key].field_name, coerced_value)

    def apply_overrides(self, **values: Any) -> None:
        """Apply command-line values by field name; ``None`` means "not given"."""
        for name, value in values.items():
            if value is None:
                continue
            spec = _FIELDS_BY_NAME.get(name)
            if spec is None:
                raise ConfigurationError(name, "unknown option")
            self.set_config_value(spec.key, value, source="command line")
            if name == "theme":
                self._theme_from_cli = True

    def context_bounds(self) -> Tuple[int, int]:
        """``(min_context, max_context)`` with ``max_context`` clamped up to ``min_context``."""
        return self.min_context, max(self.min_context, self.max_context)

    def worker_count(self) -> int:
        return self.threads or os.cpu_count() or 1

    def resolve_grid(self, force_grid: bool = False, no_grid: bool = False) -> bool:
        """``--grid`` always wins; otherwise ``--no-grid`` or a plain BAT_STYLE turn it off."""
        if force_grid:
            self.grid = True
        elif no_grid:
            self.grid = False
        elif self.printer == "bat" and os.environ.get("BAT_STYLE") in BAT_STYLE_NO_GRID:
            self.grid = False
        return self.grid

    def resolve_theme(self) -> Optional[str]:
        """A command-line theme beats ``BAT_THEME``, which only applies to the bat printer."""
        if self.printer == "bat" and not self._theme_from_cli:
            bat_theme = os.environ.get("BAT_THEME")
            if bat_theme:
                self.theme = bat_theme
        return self.theme

    def finalize(self, force_grid: bool = False, no_grid: bool = False) -> PrinterOptions:
        """Resolve everything left open and freeze the printer options for the run."""
        self.min_context, self.max_context = self.context_bounds()
        self.resolve_grid(force_grid, no_grid)
        self.resolve_theme()

        if self.term_width is not None:
            if self.term_width < MIN_TERM_WIDTH:
                raise ConfigurationError(
                    "--term-width", f"too small value {self.term_width} < {MIN_TERM_WIDTH}"
                )
            width = self.term_width
        else:
            width = max(MIN_TERM_WIDTH, shutil.get_terminal_size().columns)

        return PrinterOptions(
            tab_width=self.tab_width,
            theme=self.theme,
            grid=self.grid,
            term_width=width,
            text_wrap=TextWrapMode.parse(self.text_wrap),
            first_only=self.first_only,
            background_color=self.background_color,
            ascii_lines=self.ascii_lines,
        )

    def build_printer(self, options: PrinterOptions, sink: Optional[OutputSink] = None) -> Printer:
        """Create the selected backend; it rejects unsupported options and unknown themes."""
        return create_printer(self.printer, options, sink)

    @staticmethod
    def _find_git_root(path: Path) -> Optional[Path]:
        current = path
        while current != current.parent:
            if (current / ".git").exists():
                return current
            current = current.parent
        return None

    def summary(self) -> dict:
        min_context, max_context = self.context_bounds()
        return {
            "Printer": self.printer,
            "Theme": self.theme or "(default)",
            "Context": f"{min_context}..{max_context}",
            "Tab width": self.tab_width,
            "Grid": "ON" if self.grid else "OFF",
            "Threads": self.worker_count(),
            "Max count": self.max_count if self.max_count is not None else "(unlimited)",
            "Config": self._config_source or "(defaults)",
        }


def create_printer(kind: str, options: PrinterOptions, sink: Optional[OutputSink] = None) -> Printer:
    try:
        printer_cls = PRINTER_CLASSES[kind]
    except KeyError:
        raise ConfigurationError(
            "--printer", f"unknown printer {kind!r}, must be one of: {', '.join(sorted(PRINTERS))}"
        ) from None
    return printer_cls(options, sink)
