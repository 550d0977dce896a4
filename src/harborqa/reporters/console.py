"""Live terminal output for a run."""

from __future__ import annotations

import threading

from rich.console import Console
from rich.table import Table

from harborqa.core.events import Event, EventType, SuiteFinishedEvent, TestCompletedEvent
from harborqa.core.suite import SuiteResult
from harborqa.core.test import TestResult

_STATUS_STYLES = {
    "passed": "green",
    "failed": "red",
    "error": "red",
    "cancelled": "yellow",
    "skipped": "dim",
}

_VERBOSE_EVENTS = {
    EventType.CONTAINER_PULLING,
    EventType.CONTAINER_STARTING,
    EventType.CONTAINER_STARTED,
    EventType.CONTAINER_HEALTHY,
    EventType.CONTAINER_STOPPED,
    EventType.NETWORK_CREATED,
    EventType.NETWORK_DESTROYED,
    EventType.SCRIPT_EXECUTING,
    EventType.SCRIPT_COMPLETED,
    EventType.CLEANUP_STARTED,
    EventType.CLEANUP_COMPLETED,
}

_ALWAYS_EVENTS = {
    EventType.CONTAINER_FAILED,
    EventType.SCRIPT_FAILED,
    EventType.CLEANUP_FAILED,
    EventType.TEST_RETRYING,
    EventType.WARNING,
    EventType.ERROR,
}


class ConsoleReporter:
    """Prints progress as events arrive and a summary table on close.

    Test failures print their full message indented below the test line.
    Container, network, and script progress is only shown with ``verbose``.
    """

    def __init__(self, console: Console | None = None, verbose: bool = False) -> None:
        self.console = console or Console()
        self.verbose = verbose
        self._results: list[SuiteResult] = []
        self._lock = threading.Lock()

    def handle(self, event: Event) -> None:
        with self._lock:
            if event.type == EventType.SUITE_STARTED:
                self.console.print()
                self.console.print(f"[bold cyan]▶ {event.suite}[/bold cyan]")
            elif isinstance(event, TestCompletedEvent) and event.result is not None:
                self._print_test(event.result)
            elif event.type == EventType.SUITE_SKIPPED:
                self.console.print(f"[yellow]⊘ {event.suite}: {event.message}[/yellow]")
            elif isinstance(event, SuiteFinishedEvent) and event.result is not None:
                self._results.append(event.result)
                self._print_suite_end(event.result)
            elif event.type in _ALWAYS_EVENTS:
                style = "yellow" if event.type in (EventType.TEST_RETRYING, EventType.WARNING) else "red"
                self.console.print(f"  [{style}]{self._label(event)}[/{style}]")
            elif self.verbose and event.type in _VERBOSE_EVENTS:
                self.console.print(f"  [dim]{self._label(event)}[/dim]")

    def close(self) -> None:
        with self._lock:
            results = list(self._results)
        self.print_summary(results)

    @staticmethod
    def _label(event: Event) -> str:
        subject = f"{event.unit}: " if event.unit else ""
        return f"{event.type.value} {subject}{event.message}".rstrip()

    def _print_test(self, result: TestResult) -> None:
        timing = f"[dim]({result.duration:.2f}s)[/dim]"
        if result.skipped:
            self.console.print(f"  [dim]- {result.name} (skipped: {result.message})[/dim]")
        elif result.passed:
            self.console.print(f"  [green]✓[/green] {result.name} {timing}")
        else:
            self.console.print(f"  [red]✗[/red] {result.name} {timing}")
            for line in result.message.splitlines():
                self.console.print(f"      {line}", markup=False, highlight=False)

    def _print_suite_end(self, result: SuiteResult) -> None:
        if result.setup_error is not None:
            self.console.print(f"  [red]setup failed:[/red] {result.setup_error}", highlight=False)
        for error in result.errors:
            self.console.print(f"  [red]error:[/red] {error}", highlight=False)
        for error in result.cleanup_errors:
            self.console.print(f"  [yellow]cleanup:[/yellow] {error}", highlight=False)
        style = _STATUS_STYLES.get(result.status, "white")
        self.console.print(f"  [{style}]{result.status.upper()}[/{style}] [dim]in {result.duration:.2f}s[/dim]")

    def print_summary(self, results: list[SuiteResult]) -> None:
        if not results:
            self.console.print("\n[yellow]No suites were run.[/yellow]")
            return

        table = Table(title="Summary", show_lines=False)
        table.add_column("Suite", style="cyan")
        table.add_column("Status")
        table.add_column("Passed", justify="right")
        table.add_column("Failed", justify="right")
        table.add_column("Skipped", justify="right")
        table.add_column("Duration", justify="right")

        totals = {"total": 0, "passed": 0, "failed": 0, "skipped": 0}
        for result in results:
            counts = result.counts()
            for key in totals:
                totals[key] += counts[key]
            style = _STATUS_STYLES.get(result.status, "white")
            table.add_row(
                result.name,
                f"[{style}]{result.status}[/{style}]",
                str(counts["passed"]),
                str(counts["failed"]),
                str(counts["skipped"]),
                f"{result.duration:.2f}s",
            )

        self.console.print()
        self.console.print(table)
        passed = all(r.passed for r in results)
        colour = "green" if passed else "red"
        self.console.print(
            f"[bold {colour}]{totals['passed']} passed, {totals['failed']} failed, "
            f"{totals['skipped']} skipped[/bold {colour}] "
            f"[dim]({totals['total']} tests in {len(results)} suites)[/dim]"
        )
