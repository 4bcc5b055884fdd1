"""Shared fixtures for hlgrep tests."""

import io
import os
import re

import pytest

from hlgrep import config as config_module
from hlgrep.printer import OutputSink, PrinterOptions

ANSI_RE = re.compile(r"\x1b\[[0-9;]*m")

_ENV_VARS = (
    "HLGREP_THEME",
    "HLGREP_PRINTER",
    "HLGREP_TAB",
    "HLGREP_THREADS",
    "BAT_THEME",
    "BAT_STYLE",
    "NO_COLOR",
)


def strip_ansi(text: str) -> str:
    return ANSI_RE.sub("", text)


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    """Keep the user's ~/.hlgrep and environment out of every test."""
    home = tmp_path / "home"
    monkeypatch.setattr(config_module, "CONFIG_DIR", home / ".hlgrep")
    monkeypatch.setattr(config_module, "CONFIG_FILE", home / ".hlgrep" / "config.yml")
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("TERM", "xterm-256color")
    monkeypatch.setenv("COLORTERM", "truecolor")
    yield


@pytest.fixture
def tmp_dir(tmp_path):
    """Provide a temporary directory and cd into it."""
    orig = os.getcwd()
    work = tmp_path / "work"
    work.mkdir()
    os.chdir(work)
    yield work
    os.chdir(orig)


@pytest.fixture
def write_file(tmp_dir):
    """Write ``lines`` (or ``N`` generated lines) to a file under tmp_dir."""
    def _write(name, lines=None, count=0, newline="\n"):
        if lines is None:
            lines = [f"line {i}" for i in range(1, count + 1)]
        path = tmp_dir / name
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", newline="") as f:
            f.write("".join(line + newline for line in lines))
        return path
    return _write


@pytest.fixture
def output():
    """A sink writing into a StringIO; returns ``(sink, buffer)``."""
    buffer = io.StringIO()
    return OutputSink(buffer), buffer


@pytest.fixture
def plain_options():
    """Deterministic printer options with the default grid layout."""
    return PrinterOptions(term_width=80, theme="monokai")
