"""Running tally of outcomes, fed by the event bus."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING

from harborqa.core.events import Event, EventType, SuiteFinishedEvent, TestCompletedEvent

if TYPE_CHECKING:
    from harborqa.core.suite import SuiteResult


@dataclass
class Tally:
    passed: int = 0
    failed: int = 0
    skipped: int = 0
    suites_passed: int = 0
    suites_failed: int = 0
    cleanup_errors: int = 0
    started_at: datetime = field(default_factory=datetime.now)

    @property
    def total(self) -> int:
        return self.passed + self.failed + self.skipped


class ResultsAccumulator:
    """Counts passed/failed/skipped tests and collects suite results."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._tally = Tally()
        self._suites: list[SuiteResult] = []

    def handle(self, event: Event) -> None:
        with self._lock:
            if isinstance(event, TestCompletedEvent) and event.result is not None:
                if event.result.skipped:
                    self._tally.skipped += 1
                elif event.result.passed:
                    self._tally.passed += 1
                else:
                    self._tally.failed += 1
            elif event.type == EventType.TEST_SKIPPED:
                self._tally.skipped += 1
            elif event.type == EventType.CLEANUP_FAILED:
                self._tally.cleanup_errors += 1
            elif isinstance(event, SuiteFinishedEvent) and event.result is not None:
                self._suites.append(event.result)
                if event.result.passed:
                    self._tally.suites_passed += 1
                else:
                    self._tally.suites_failed += 1

    def close(self) -> None:
        return None

    @property
    def tally(self) -> Tally:
        with self._lock:
            return Tally(**vars(self._tally))

    @property
    def suites(self) -> list[SuiteResult]:
        with self._lock:
            return list(self._suites)
