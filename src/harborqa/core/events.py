"""Event types emitted during a run."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from harborqa.core.suite import SuiteResult
    from harborqa.core.test import TestResult


class EventType(Enum):
    """Lifecycle and outcome events."""

    SUITE_STARTED = "suite.started"
    SUITE_COMPLETED = "suite.completed"
    SUITE_ERROR = "suite.error"
    SUITE_SKIPPED = "suite.skipped"
    SUITE_FINISHED = "suite.finished"

    TEST_STARTED = "test.started"
    TEST_COMPLETED = "test.completed"
    TEST_SKIPPED = "test.skipped"
    TEST_RETRYING = "test.retrying"

    CONTAINER_PULLING = "container.pulling"
    CONTAINER_STARTING = "container.starting"
    CONTAINER_STARTED = "container.started"
    CONTAINER_HEALTHY = "container.healthy"
    CONTAINER_FAILED = "container.failed"
    CONTAINER_STOPPED = "container.stopped"

    NETWORK_CREATED = "network.created"
    NETWORK_DESTROYED = "network.destroyed"

    SCRIPT_EXECUTING = "script.executing"
    SCRIPT_COMPLETED = "script.completed"
    SCRIPT_FAILED = "script.failed"

    CLEANUP_STARTED = "cleanup.started"
    CLEANUP_COMPLETED = "cleanup.completed"
    CLEANUP_FAILED = "cleanup.failed"

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"

    @property
    def category(self) -> str:
        return self.value.split(".", 1)[0]


@dataclass(frozen=True)
class Event:
    """An immutable fact about a lifecycle transition or outcome."""

    type: EventType
    message: str = ""
    suite: str | None = None
    unit: str | None = None
    test: str | None = None
    timestamp: datetime = field(default_factory=datetime.now)
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "message": self.message,
            "suite": self.suite,
            "unit": self.unit,
            "test": self.test,
            "timestamp": self.timestamp.isoformat(),
            "data": self.data,
        }


@dataclass(frozen=True)
class TestCompletedEvent(Event):
    """Carries the immutable result of one test."""

    result: TestResult | None = None


@dataclass(frozen=True)
class SuiteFinishedEvent(Event):
    """Terminal event for a suite, carrying its full result."""

    result: SuiteResult | None = None


@runtime_checkable
class EventSink(Protocol):
    """Anything events can be published to."""

    def publish(self, event: Event) -> None: ...


class NullSink:
    """Discards events; used when a unit runs outside a suite runner."""

    def publish(self, event: Event) -> None:
        return None
