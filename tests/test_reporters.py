"""Tests for the console, JSON and HTML reporters."""

from __future__ import annotations

import io
import json
from pathlib import Path

import pytest
from rich.console import Console

from harborqa import __version__
from harborqa.core.events import Event, EventType, SuiteFinishedEvent, TestCompletedEvent
from harborqa.core.suite import SuiteResult
from harborqa.core.test import TestResult
from harborqa.errors import SetupError
from harborqa.reporters import ConsoleReporter, HTMLReporter, JSONReporter


def passed_suite() -> SuiteResult:
    return SuiteResult(
        "orders",
        results=[TestResult.success("list", duration=0.1), TestResult.success("create", duration=0.2)],
        duration=1.5,
        path="tests/orders/suite.yml",
    )


def failed_suite() -> SuiteResult:
    return SuiteResult(
        "payments",
        results=[
            TestResult.failure("charge", "expected status code 201, got 500\n<html>oops</html>"),
            TestResult.skip("refund", "run cancelled"),
        ],
        cleanup_errors=["failed to cleanup network harborqa-x: busy"],
        duration=2.0,
    )


def finished(result: SuiteResult) -> SuiteFinishedEvent:
    return SuiteFinishedEvent(type=EventType.SUITE_FINISHED, suite=result.name, result=result)


@pytest.fixture
def output() -> io.StringIO:
    return io.StringIO()


@pytest.fixture
def console(output: io.StringIO) -> Console:
    return Console(file=output, width=120, color_system=None)


class TestConsoleReporter:
    def test_prints_suite_and_tests(self, console: Console, output: io.StringIO) -> None:
        reporter = ConsoleReporter(console)
        result = failed_suite()

        reporter.handle(Event(type=EventType.SUITE_STARTED, suite="payments"))
        for test in result.results:
            reporter.handle(TestCompletedEvent(type=EventType.TEST_COMPLETED, suite="payments", result=test))
        reporter.handle(finished(result))

        text = output.getvalue()
        assert "▶ payments" in text
        assert "✗ charge" in text
        assert "      <html>oops</html>" in text
        assert "refund (skipped: run cancelled)" in text
        assert "cleanup: failed to cleanup network harborqa-x: busy" in text
        assert "FAILED" in text

    def test_setup_error_is_printed(self, console: Console, output: io.StringIO) -> None:
        reporter = ConsoleReporter(console)

        reporter.handle(finished(SuiteResult("broken", setup_error=SetupError("image pull failed"))))

        assert "setup failed:" in output.getvalue()
        assert "image pull failed" in output.getvalue()
        assert "ERROR" in output.getvalue()

    def test_container_events_only_when_verbose(self, output: io.StringIO) -> None:
        event = Event(type=EventType.CONTAINER_STARTED, suite="s", unit="db", message="Unit db started")

        ConsoleReporter(Console(file=output, color_system=None)).handle(event)
        assert output.getvalue() == ""

        ConsoleReporter(Console(file=output, color_system=None), verbose=True).handle(event)
        assert "container.started db: Unit db started" in output.getvalue()

    def test_failures_always_shown(self, console: Console, output: io.StringIO) -> None:
        ConsoleReporter(console).handle(Event(type=EventType.TEST_RETRYING, suite="s", message="retrying in 2.0s"))

        assert "test.retrying retrying in 2.0s" in output.getvalue()

    def test_summary_table(self, console: Console, output: io.StringIO) -> None:
        reporter = ConsoleReporter(console)
        reporter.handle(finished(passed_suite()))
        reporter.handle(finished(failed_suite()))

        reporter.close()

        text = output.getvalue()
        assert "Summary" in text
        assert "orders" in text and "payments" in text
        assert "2 passed, 1 failed, 1 skipped" in text
        assert "(4 tests in 2 suites)" in text

    def test_empty_summary(self, console: Console, output: io.StringIO) -> None:
        ConsoleReporter(console).close()

        assert "No suites were run." in output.getvalue()


class TestJSONReporter:
    def test_build_report(self) -> None:
        report = JSONReporter().build_report([passed_suite(), failed_suite()])

        assert report["version"] == __version__
        assert report["summary"] == {
            "suites": 2,
            "suites_passed": 1,
            "suites_failed": 1,
            "tests": 4,
            "passed": 2,
            "failed": 1,
            "skipped": 1,
            "duration": 3.5,
            "success": False,
        }
        assert [s["status"] for s in report["suites"]] == ["passed", "failed"]
        assert report["suites"][1]["tests"][1]["status"] == "skipped"

    def test_writes_on_close(self, tmp_path: Path) -> None:
        path = tmp_path / "reports" / "run.json"
        reporter = JSONReporter(path)
        reporter.handle(finished(passed_suite()))
        reporter.handle(Event(type=EventType.SUITE_STARTED, suite="ignored"))

        reporter.close()

        data = json.loads(path.read_text())
        assert data["summary"]["success"] is True
        assert [s["name"] for s in data["suites"]] == ["orders"]

    def test_no_path_writes_nothing(self) -> None:
        reporter = JSONReporter()
        reporter.close()

        with pytest.raises(ValueError, match="Output path required"):
            reporter.save([])

    def test_empty_run(self) -> None:
        report = JSONReporter().build_report([])

        assert report["summary"]["success"] is False
        assert report["suites"] == []


class TestHTMLReporter:
    def test_renders_and_escapes(self) -> None:
        html = HTMLReporter(title="Nightly <run>").generate([passed_suite(), failed_suite()])

        assert html.startswith("<!DOCTYPE html>")
        assert "Nightly &lt;run&gt;" in html
        assert "&lt;html&gt;oops&lt;/html&gt;" in html
        assert "<html>oops" not in html
        assert "status-failed" in html
        assert "Cleanup: failed to cleanup network harborqa-x: busy" in html

    def test_empty_run(self) -> None:
        assert "No suites were run." in HTMLReporter().generate([])

    def test_file_extension(self, tmp_path: Path) -> None:
        reporter = HTMLReporter(tmp_path / "report.html")
        reporter.handle(finished(passed_suite()))
        reporter.close()

        assert reporter.file_extension == ".html"
        assert "orders" in (tmp_path / "report.html").read_text()
