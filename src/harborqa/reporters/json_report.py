"""JSON reporter for machine-readable output."""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import Any

from harborqa import __version__
from harborqa.core.suite import SuiteResult
from harborqa.reporters.base import FileReporter


class JSONReporter(FileReporter):
    """Writes ``{"summary", "suites", "generated_at"}`` on close.

    Example:
        >>> reporter = JSONReporter("reports/run.json")
        >>> bus.subscribe(reporter)
    """

    def __init__(self, output_path: str | Path | None = None, indent: int | None = 2) -> None:
        super().__init__(output_path)
        self.indent = indent

    @property
    def file_extension(self) -> str:
        return ".json"

    def generate(self, results: list[SuiteResult]) -> str:
        return json.dumps(self.build_report(results), indent=self.indent, default=str)

    def build_report(self, results: list[SuiteResult]) -> dict[str, Any]:
        return {
            "generated_at": datetime.now().isoformat(),
            "version": __version__,
            "summary": self.summarize(results),
            "suites": [result.to_dict() for result in results],
        }
