"""Tests for Orchestrator — result folding, the shared match budget and error handling."""

import threading
from unittest.mock import MagicMock

import pytest

from conftest import strip_ansi
from hlgrep.errors import ConfigurationError, FileIOError, RenderError
from hlgrep.orchestrator import Orchestrator
from hlgrep.printer import Printer, PrinterOptions
from hlgrep.rich_printer import RichPrinter
from hlgrep.search import MatchBudget, SearchConfig


class RecordingPrinter(Printer):
    """Records what would be printed; raises for file names listed in ``fail_on``."""

    name = "recording"

    def __init__(self, fail_on=()):
        super().__init__(PrinterOptions(), MagicMock())
        self.fail_on = set(fail_on)
        self.printed = []
        self._lock = threading.Lock()

    def render(self, file, chunks):
        if file.path.name in self.fail_on:
            raise RenderError(file.path, "boom")
        with self._lock:
            self.printed.append((file.path.name, [n for c in chunks for n in c.matched_lines]))
        return ""

    def themes(self):
        return []

    def list_themes(self):
        pass

    def matched_count(self):
        return sum(len(numbers) for _, numbers in self.printed)


@pytest.fixture
def three_hits(write_file):
    """Two files with three matching lines each, plus one without matches."""
    for name in ("a.py", "b.py"):
        write_file(name, ["x", "hit", "x", "hit", "x", "hit", "x"])
    write_file("c.py", ["nothing", "here"])


class TestRunSearch:

    def test_found(self, three_hits, tmp_dir):
        printer = RecordingPrinter()
        found = Orchestrator(printer, 0, 0, threads=2).run_search(SearchConfig(pattern="hit", paths=(str(tmp_dir),)))
        assert found is True
        assert sorted(printer.printed) == [("a.py", [2, 4, 6]), ("b.py", [2, 4, 6])]

    def test_not_found(self, three_hits, tmp_dir):
        printer = RecordingPrinter()
        found = Orchestrator(printer, 0, 0).run_search(SearchConfig(pattern="missing", paths=(str(tmp_dir),)))
        assert found is False
        assert printer.printed == []

    def test_invalid_pattern_fails_before_work(self, three_hits, tmp_dir):
        printer = RecordingPrinter()
        with pytest.raises(ConfigurationError):
            Orchestrator(printer, 0, 0).run_search(SearchConfig(pattern="(", paths=(str(tmp_dir),)))
        assert printer.printed == []

    @pytest.mark.parametrize("threads", [1, 2, 4])
    def test_shared_budget_across_files(self, three_hits, tmp_dir, threads):
        for _ in range(5):
            printer = RecordingPrinter()
            orchestrator = Orchestrator(printer, 0, 0, threads=threads, budget=MatchBudget(2))
            assert orchestrator.run_search(SearchConfig(pattern="hit", paths=(str(tmp_dir),))) is True
            assert printer.matched_count() == 2

    def test_budget_zero(self, three_hits, tmp_dir):
        printer = RecordingPrinter()
        orchestrator = Orchestrator(printer, 0, 0, budget=MatchBudget(0))
        assert orchestrator.run_search(SearchConfig(pattern="hit", paths=(str(tmp_dir),))) is False

    def test_max_context_clamped(self):
        assert Orchestrator(RecordingPrinter(), 4, 1).max_context == 4


class TestRunStream:

    def test_groups_by_file(self, three_hits):
        printer = RecordingPrinter()
        stream = ["a.py:2:hit\n", "a.py:6:hit\n", "b.py:4:hit\n"]
        assert Orchestrator(printer, 0, 0, threads=2).run_stream(stream) is True
        assert sorted(printer.printed) == [("a.py", [2, 6]), ("b.py", [4])]

    def test_empty_stream(self):
        printer = RecordingPrinter()
        assert Orchestrator(printer, 0, 0).run_stream([]) is False

    def test_only_noise(self):
        printer = RecordingPrinter()
        assert Orchestrator(printer, 0, 0).run_stream(["--\n", "a.py-1-ctx\n"]) is False

    def test_budget_truncates_stream(self, three_hits):
        printer = RecordingPrinter()
        stream = ["a.py:2:hit\n", "a.py:4:hit\n", "a.py:6:hit\n", "b.py:2:hit\n"]
        Orchestrator(printer, 0, 0, budget=MatchBudget(2)).run_stream(stream)
        assert printer.printed == [("a.py", [2, 4])]

    def test_missing_file(self, tmp_dir):
        with pytest.raises(FileIOError):
            Orchestrator(RecordingPrinter(), 0, 0).run_stream(["gone.py:1:x\n"])


class TestErrors:
    """The first error stops scheduling and is re-raised after in-flight work."""

    @pytest.fixture
    def many_files(self, write_file):
        names = [f"f{i:02d}.py" for i in range(20)]
        for name in names:
            write_file(name, ["hit"])
        return names

    def test_error_propagates(self, many_files):
        printer = RecordingPrinter(fail_on={"f05.py"})
        stream = [f"{name}:1:hit\n" for name in many_files]
        with pytest.raises(RenderError) as exc_info:
            Orchestrator(printer, 0, 0, threads=3).run_stream(stream)
        assert exc_info.value.path == "f05.py"

    def test_no_new_work_after_error(self, many_files):
        printer = RecordingPrinter(fail_on={"f00.py"})
        stream = [f"{name}:1:hit\n" for name in many_files]
        with pytest.raises(RenderError):
            Orchestrator(printer, 0, 0, threads=1).run_stream(stream)
        assert printer.printed == []

    def test_output_before_error_is_kept(self, many_files):
        printer = RecordingPrinter(fail_on={"f01.py"})
        stream = [f"{name}:1:hit\n" for name in many_files]
        with pytest.raises(RenderError):
            Orchestrator(printer, 0, 0, threads=1).run_stream(stream)
        assert printer.printed == [("f00.py", [1])]

    def test_search_error(self, many_files, tmp_dir):
        printer = RecordingPrinter(fail_on={"f10.py"})
        with pytest.raises(RenderError):
            Orchestrator(printer, 0, 0, threads=4).run_search(SearchConfig(pattern="hit", paths=(str(tmp_dir),)))
        assert len(printer.printed) < 20


class TestConcurrentOutput:

    def test_each_file_printed_contiguously(self, write_file, tmp_dir, output):
        sink, buffer = output
        names = [f"m{i}.py" for i in range(8)]
        for name in names:
            lines = ["x"] * 40
            lines[1] = lines[29] = f"hit {name}"
            write_file(name, lines)

        printer = RichPrinter(PrinterOptions(grid=False, term_width=80), sink)
        config = SearchConfig(pattern="hit", paths=(str(tmp_dir),))
        assert Orchestrator(printer, 1, 1, threads=4).run_search(config) is True

        blocks = strip_ansi(buffer.getvalue()).split("\n\n")
        blocks = [b for b in blocks if b.strip()]
        assert len(blocks) == len(names)
        for block in blocks:
            header = block.splitlines()[0]
            name = header.rsplit("/", 1)[-1]
            assert f" 2:hit {name}" in block
            assert f"30:hit {name}" in block
