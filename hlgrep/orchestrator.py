"""Run search, aggregation and rendering for many files on a thread pool."""

import logging
import os
import threading
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from functools import partial
from pathlib import Path
from typing import Callable, Iterable, Iterator, List, Optional, Set

from .chunk import Match, chunks_for_file
from .grep import grep_lines, matches_per_file
from .printer import Printer
from .search import MatchBudget, SearchConfig, build_regex, search_file, walk

_log = logging.getLogger(__name__)

# Work units queued per worker before the dispatcher waits for one to finish.
IN_FLIGHT_PER_WORKER = 2

WorkUnit = Callable[[], bool]


class Orchestrator:
    """Fans files out to worker threads and folds their results.

    Every unit renders one file through the shared printer, whose sink
    serializes writes, so a file's snippets print contiguously while files
    come out in completion order. ``run_*`` returns ``True`` if any unit
    printed something. The first error stops scheduling; units already
    running finish and their output stays, then the error is re-raised.
    """

    def __init__(
        self,
        printer: Printer,
        min_context: int,
        max_context: int,
        threads: int = 0,
        budget: Optional[MatchBudget] = None,
    ):
        self.printer = printer
        self.min_context = min_context
        self.max_context = max(min_context, max_context)
        self.threads = threads or os.cpu_count() or 1
        self.budget = budget if budget is not None else MatchBudget()

    # ── Match sources ──

    def run_search(self, config: SearchConfig) -> bool:
        """Search every file under ``config.paths`` with the built-in regex engine."""
        regex = build_regex(config)
        files = walk(config)
        _log.info("searching %d files with %d threads", len(files), self.threads)
        return self._dispatch(self._search_units(files, regex, config))

    def run_stream(self, stream: Iterable[str]) -> bool:
        """Render matches parsed from ``grep -nH``-style lines."""
        matches = self._within_budget(grep_lines(stream))
        units = (partial(self._render_unit, path, numbers) for path, numbers in matches_per_file(matches))
        return self._dispatch(units)

    def _search_units(self, files: List[Path], regex, config: SearchConfig) -> Iterator[WorkUnit]:
        for path in files:
            if self.budget.is_exhausted():
                _log.info("match budget spent, not searching remaining files")
                return
            yield partial(self._search_unit, path, regex, config)

    def _within_budget(self, matches: Iterable[Match]) -> Iterator[Match]:
        for match in matches:
            if not self.budget.try_take():
                _log.info("match budget spent, ignoring remaining input")
                return
            yield match

    # ── Work units ──

    def _search_unit(self, path: Path, regex, config: SearchConfig) -> bool:
        if self.budget.is_exhausted():
            return False
        lines, matched = search_file(path, regex, config, self.budget)
        if not matched:
            return False
        return self.printer.print(
            chunks_for_file(path, matched, self.min_context, self.max_context, lines=lines)
        )

    def _render_unit(self, path: Path, line_numbers: List[int]) -> bool:
        return self.printer.print(chunks_for_file(path, line_numbers, self.min_context, self.max_context))

    # ── Dispatch ──

    def _dispatch(self, units: Iterable[WorkUnit]) -> bool:
        cancel = threading.Event()
        found = False
        errors: List[BaseException] = []
        max_in_flight = self.threads * IN_FLIGHT_PER_WORKER

        def collect(done: Set[Future]) -> None:
            nonlocal found
            for future in done:
                error = future.exception()
                if error is not None:
                    if not errors:
                        _log.info("stopping after error: %s", error)
                    errors.append(error)
                    cancel.set()
                elif future.result():
                    found = True

        with ThreadPoolExecutor(max_workers=self.threads, thread_name_prefix="hlgrep") as pool:
            pending: Set[Future] = set()
            for unit in units:
                if cancel.is_set():
                    break
                if len(pending) >= max_in_flight:
                    done, pending = wait(pending, return_when=FIRST_COMPLETED)
                    collect(done)
                    if cancel.is_set():
                        break
                pending.add(pool.submit(self._run_unit, unit, cancel))
            done, _ = wait(pending)
            collect(done)

        if errors:
            if len(errors) > 1:
                _log.debug("%d more errors after the first were discarded", len(errors) - 1)
            raise errors[0]
        return found

    @staticmethod
    def _run_unit(unit: WorkUnit, cancel: threading.Event) -> bool:
        if cancel.is_set():
            return False
        try:
            return unit()
        except Exception:
            cancel.set()
            raise

