"""Test contract implemented by every test-kind adapter."""

from __future__ import annotations

import dataclasses
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from harborqa.core.cancellation import CancellationToken
from harborqa.errors.base import ErrorContext, TargetResolutionError

if TYPE_CHECKING:
    from harborqa.core.suite import TestSuite
    from harborqa.core.unit import Unit


@dataclass(frozen=True)
class TestResult:
    """Outcome of a single test. Immutable once produced."""

    __test__ = False

    name: str
    passed: bool
    message: str = ""
    duration: float = 0.0
    suite: str | None = None
    kind: str | None = None
    skipped: bool = False

    @classmethod
    def success(cls, name: str, message: str = "", **kwargs: Any) -> TestResult:
        return cls(name=name, passed=True, message=message, **kwargs)

    @classmethod
    def failure(cls, name: str, message: str, **kwargs: Any) -> TestResult:
        return cls(name=name, passed=False, message=message, **kwargs)

    @classmethod
    def skip(cls, name: str, message: str = "skipped", **kwargs: Any) -> TestResult:
        return cls(name=name, passed=False, message=message, skipped=True, **kwargs)

    @property
    def status(self) -> str:
        if self.skipped:
            return "skipped"
        return "passed" if self.passed else "failed"

    def with_timing(self, duration: float, suite: str | None = None, kind: str | None = None) -> TestResult:
        """Return a copy stamped with duration and ownership."""
        return dataclasses.replace(
            self,
            duration=duration,
            suite=self.suite or suite,
            kind=self.kind or kind,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status,
            "passed": self.passed,
            "message": self.message,
            "duration": round(self.duration, 4),
            "suite": self.suite,
            "kind": self.kind,
        }


@dataclass
class TestRunOptions:
    __test__ = False

    token: CancellationToken = field(default_factory=CancellationToken)
    fixtures: dict[str, str] = field(default_factory=dict)
    working_dir: Path = field(default_factory=Path.cwd)
    verbose: bool = False


class SuiteTest(ABC):
    """One test case bound to a target unit.

    Subclasses set ``kind`` and implement ``run``. ``initialize`` resolves
    the target (a per-test ``target`` wins over the suite default) and
    then calls ``on_initialize`` so adapters can capture endpoints.
    """

    kind: str = ""

    def __init__(self, name: str, target_name: str | None = None) -> None:
        self.name = name
        self.target_name = target_name
        self._target: Unit | None = None

    @property
    def target(self) -> Unit:
        if self._target is None:
            raise TargetResolutionError(
                f"test '{self.name}' has not been initialized",
                context=ErrorContext(test=self.name, operation="initialize"),
            )
        return self._target

    def initialize(self, suite: TestSuite) -> None:
        self._target = suite.resolve_target(self)
        self.on_initialize(self._target)

    def on_initialize(self, target: Unit) -> None:
        """Hook for adapters; called once the target is resolved."""

    @abstractmethod
    def run(self, options: TestRunOptions) -> TestResult:
        """Execute the test once and return its result."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, target={self.target_name!r})"
