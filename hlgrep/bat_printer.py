"""External printer: delegates highlighting and layout to the ``bat`` command."""

import logging
import shutil
import subprocess
from typing import List, Optional, Sequence

from .chunk import Chunk, MatchedFile
from .errors import ConfigurationError, RenderError
from .printer import OutputSink, Printer, PrinterOptions, TextWrapMode

_log = logging.getLogger(__name__)

BAT_EXECUTABLES = ("bat", "batcat")  # Debian/Ubuntu ship it as batcat
BAT_TIMEOUT = 60


def find_bat() -> Optional[str]:
    for name in BAT_EXECUTABLES:
        found = shutil.which(name)
        if found:
            return found
    return None


class BatPrinter(Printer):
    """Runs ``bat`` once per file with one ``--line-range`` per chunk.

    bat cannot paint theme backgrounds nor draw ASCII borders, so those
    options are rejected when the printer is created.
    """

    name = "bat"
    SUPPORTED_FEATURES = frozenset()

    def __init__(
        self,
        options: PrinterOptions,
        sink: Optional[OutputSink] = None,
        executable: Optional[str] = None,
    ):
        super().__init__(options, sink)
        self.executable = executable or find_bat()
        if self.executable is None:
            raise ConfigurationError("--printer", "'bat' command was not found in PATH")
        if options.theme and options.theme not in self.themes():
            raise ConfigurationError(
                "--theme", f"unknown theme {options.theme!r}. Use --list-themes to see available themes"
            )

    def style(self) -> str:
        return "header,grid,numbers,snip" if self.options.grid else "header,numbers,snip"

    def command(self, file: MatchedFile, chunks: Sequence[Chunk]) -> List[str]:
        opts = self.options
        wrap = "character" if opts.text_wrap is TextWrapMode.CHAR else "never"
        cmd = [
            self.executable,
            "--color=always",
            "--paging=never",
            f"--style={self.style()}",
            f"--tabs={opts.tab_width}",
            f"--wrap={wrap}",
            f"--terminal-width={opts.term_width}",
        ]
        if opts.theme:
            cmd.append(f"--theme={opts.theme}")
        for chunk in chunks:
            cmd.append(f"--line-range={chunk.start}:{chunk.end}")
            cmd.extend(f"--highlight-line={n}" for n in chunk.matched_lines)
        cmd.extend(["--", str(file.path)])
        return cmd

    def render(self, file: MatchedFile, chunks: Sequence[Chunk]) -> str:
        return self._run(self.command(file, chunks), file.path)

    def themes(self) -> List[str]:
        output = self._run([self.executable, "--list-themes", "--color=never"], None)
        return [line.strip() for line in output.splitlines() if line.strip()]

    def list_themes(self) -> None:
        self.sink.write(self._run([self.executable, "--list-themes", "--color=always"], None))

    def _run(self, cmd: List[str], path) -> str:
        _log.debug("running %s", " ".join(cmd))
        try:
            proc = subprocess.run(cmd, capture_output=True, timeout=BAT_TIMEOUT)
        except subprocess.TimeoutExpired as e:
            raise RenderError(path, f"bat timed out after {BAT_TIMEOUT}s") from e
        except OSError as e:
            raise RenderError(path, f"could not run bat: {e}") from e
        if proc.returncode != 0:
            stderr = proc.stderr.decode("utf-8", errors="replace").strip()
            raise RenderError(path, f"bat exited with status {proc.returncode}: {stderr}")
        return proc.stdout.decode("utf-8", errors="replace")
