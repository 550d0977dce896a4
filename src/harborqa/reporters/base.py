"""Base class for reporters that write a file when the run ends.

A file reporter is an event-bus consumer: it keeps every suite result it
sees and renders the whole report once, on ``close``.

Example:
    >>> class CSVReporter(FileReporter):
    ...     @property
    ...     def file_extension(self) -> str:
    ...         return ".csv"
    ...
    ...     def generate(self, results: list[SuiteResult]) -> str:
    ...         return "\\n".join(f"{r.name},{r.status}" for r in results)
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from harborqa.core.events import Event, SuiteFinishedEvent
from harborqa.core.suite import SuiteResult

logger = logging.getLogger(__name__)


class FileReporter(ABC):
    """Collects suite results from the bus and saves a report on close.

    Attributes:
        output_path: Where ``close`` writes the report. Nothing is written
            when it is None.
    """

    def __init__(self, output_path: str | Path | None = None) -> None:
        self.output_path = Path(output_path) if output_path else None
        self._results: list[SuiteResult] = []
        self._lock = threading.Lock()

    @property
    @abstractmethod
    def file_extension(self) -> str:
        """File extension including the dot, e.g. ``.json``."""

    @abstractmethod
    def generate(self, results: list[SuiteResult]) -> str:
        """Render the report for ``results``. Must handle an empty list."""

    @property
    def results(self) -> list[SuiteResult]:
        with self._lock:
            return list(self._results)

    def handle(self, event: Event) -> None:
        if isinstance(event, SuiteFinishedEvent) and event.result is not None:
            with self._lock:
                self._results.append(event.result)

    def close(self) -> None:
        if self.output_path is None:
            return
        path = self.save(self.results)
        logger.info(f"Wrote {type(self).__name__} report to {path}")

    def save(self, results: list[SuiteResult], path: str | Path | None = None) -> Path:
        """Write the report, creating parent directories.

        Raises:
            ValueError: no path given and none set in the constructor.
        """
        output_path = Path(path) if path else self.output_path
        if not output_path:
            raise ValueError("Output path required for saving report.")

        content = self.generate(results)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, "w", encoding="utf-8") as f:
            f.write(content)
        return output_path

    @staticmethod
    def summarize(results: list[SuiteResult]) -> dict[str, Any]:
        tests = [test for result in results for test in result.results]
        return {
            "suites": len(results),
            "suites_passed": sum(1 for r in results if r.passed),
            "suites_failed": sum(1 for r in results if not r.passed),
            "tests": len(tests),
            "passed": sum(1 for t in tests if t.passed),
            "failed": sum(1 for t in tests if not t.passed and not t.skipped),
            "skipped": sum(1 for t in tests if t.skipped),
            "duration": round(sum(r.duration for r in results), 4),
            "success": bool(results) and all(r.passed for r in results),
        }
