"""Test suite model and result."""

from __future__ import annotations

import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from harborqa.core.test import SuiteTest, TestResult
from harborqa.core.unit import Unit
from harborqa.errors.base import (
    ConfigurationError,
    ErrorContext,
    HarborQAError,
    SuiteValidationError,
    TargetResolutionError,
)

SUITE_KIND_V1 = "e2e_test:v1"
SCRIPT_PHASES = ("before_all", "before_each", "after_each", "after_all")


@dataclass
class Fixture:
    """A named value available to ``{{ name }}`` interpolation.

    ``file`` is read lazily, relative to the suite directory.
    """

    name: str
    value: str | None = None
    file: str | None = None

    def resolve(self, base: Path) -> str:
        if self.value is not None:
            return str(self.value)
        if self.file:
            path = Path(self.file)
            if not path.is_absolute():
                path = base / path
            try:
                return path.read_text()
            except OSError as e:
                raise ConfigurationError(f"cannot read fixture '{self.name}' from {path}", cause=e) from e
        return ""


@dataclass
class TestSuite:
    """Units and tests sharing one network for one run."""

    __test__ = False

    name: str
    units: list[Unit] = field(default_factory=list)
    tests: list[SuiteTest] = field(default_factory=list)
    target_name: str | None = None
    kind: str = SUITE_KIND_V1
    path: Path | None = None
    fixtures: list[Fixture] = field(default_factory=list)
    before_all: str | None = None
    after_all: str | None = None
    before_each: str | None = None
    after_each: str | None = None

    @property
    def working_dir(self) -> Path:
        return self.path.parent if self.path is not None else Path.cwd()

    def unit(self, name: str) -> Unit | None:
        return next((unit for unit in self.units if unit.name == name), None)

    @property
    def target(self) -> Unit | None:
        return self.unit(self.target_name) if self.target_name else None

    def resolve_target(self, test: SuiteTest) -> Unit:
        """Per-test override first, then the suite default."""
        name = test.target_name or self.target_name
        context = ErrorContext(suite=self.name, test=test.name, operation="resolve_target")
        if not name:
            raise TargetResolutionError(
                f"test '{test.name}' has no target and suite '{self.name}' has no default target",
                context=context,
            )
        unit = self.unit(name)
        if unit is None:
            raise TargetResolutionError(
                f"target '{name}' of test '{test.name}' is not a unit of suite '{self.name}'",
                context=context,
            )
        return unit

    def resolved_fixtures(self) -> dict[str, str]:
        return {fixture.name: fixture.resolve(self.working_dir) for fixture in self.fixtures}

    def validate(self) -> None:
        """Check names and targets before any container work.

        Raises:
            SuiteValidationError: duplicate names, no units or a lifecycle
                script that cannot be parsed.
            TargetResolutionError: a default or per-test target does not exist.
        """
        issues: list[dict[str, Any]] = []

        if not self.units:
            issues.append({"path": ["units"], "message": f"suite '{self.name}' has no units"})

        for label, names in (("unit", [u.name for u in self.units]), ("test", [t.name for t in self.tests])):
            seen: set[str] = set()
            for name in names:
                if name in seen:
                    issues.append({"path": [f"{label}s"], "message": f"duplicate {label} name '{name}'"})
                seen.add(name)

        fixture_names = [fixture.name for fixture in self.fixtures]
        if len(set(fixture_names)) != len(fixture_names):
            issues.append({"path": ["fixtures"], "message": "duplicate fixture names"})

        for phase in SCRIPT_PHASES:
            command = getattr(self, phase)
            if not command:
                continue
            try:
                shlex.split(command)
            except ValueError as e:
                issues.append({"path": [phase], "message": f"cannot parse script: {e}"})

        if issues:
            raise SuiteValidationError(issues=issues, context=ErrorContext(suite=self.name, operation="validate"))

        if self.target_name and self.unit(self.target_name) is None:
            raise TargetResolutionError(
                f"suite target '{self.target_name}' is not one of the units: "
                f"{', '.join(u.name for u in self.units)}",
                context=ErrorContext(suite=self.name, operation="validate"),
            )

        for test in self.tests:
            self.resolve_target(test)


@dataclass
class SuiteResult:
    """Everything reported about one suite."""

    name: str
    results: list[TestResult] = field(default_factory=list)
    setup_error: HarborQAError | None = None
    errors: list[str] = field(default_factory=list)
    cleanup_errors: list[str] = field(default_factory=list)
    duration: float = 0.0
    cancelled: bool = False
    path: str | None = None

    @property
    def failed_tests(self) -> list[TestResult]:
        return [r for r in self.results if not r.passed and not r.skipped]

    @property
    def passed(self) -> bool:
        return (
            self.setup_error is None
            and not self.errors
            and not self.cleanup_errors
            and not self.cancelled
            and not self.failed_tests
        )

    @property
    def failed(self) -> bool:
        return not self.passed

    @property
    def status(self) -> str:
        if self.cancelled:
            return "cancelled"
        if self.setup_error is not None:
            return "error"
        return "passed" if self.passed else "failed"

    def counts(self) -> dict[str, int]:
        return {
            "total": len(self.results),
            "passed": sum(1 for r in self.results if r.passed),
            "failed": len(self.failed_tests),
            "skipped": sum(1 for r in self.results if r.skipped),
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status,
            "path": self.path,
            "duration": round(self.duration, 4),
            "counts": self.counts(),
            "setup_error": self.setup_error.to_dict() if self.setup_error else None,
            "errors": list(self.errors),
            "cleanup_errors": list(self.cleanup_errors),
            "tests": [r.to_dict() for r in self.results],
        }
