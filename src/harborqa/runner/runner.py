"""Top-level runner: discover, load and execute suites."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path

from harborqa.cleanup.images import prune_image_cache
from harborqa.cleanup.registry import CleanupRegistry
from harborqa.config.loader import discover_suite_files, load_suite
from harborqa.config.settings import HarborSettings
from harborqa.core.bus import Consumer, EventBus
from harborqa.core.cancellation import CancellationToken
from harborqa.core.events import Event, EventType, SuiteFinishedEvent
from harborqa.core.ports import PortAllocator, get_port_allocator
from harborqa.core.registry import Registries
from harborqa.core.results import Tally
from harborqa.core.suite import SuiteResult, TestSuite
from harborqa.errors.base import HarborQAError, SuiteValidationError, format_issue
from harborqa.infra.base import ContainerRuntime
from harborqa.runner.filters import SuiteFilter
from harborqa.runner.suite_runner import SuiteRunner, SuiteRunnerConfig, new_session_id

logger = logging.getLogger(__name__)


def discover_suites(base_dir: str | Path) -> list[Path]:
    """Suite files under ``<base>/tests``, sorted by directory name."""
    return discover_suite_files(base_dir)


@dataclass
class RunSummary:
    """Outcome of a whole run."""

    results: list[SuiteResult] = field(default_factory=list)
    tally: Tally = field(default_factory=Tally)
    cancelled: bool = False
    duration: float = 0.0

    @property
    def passed(self) -> bool:
        return bool(self.results) and all(result.passed for result in self.results) and not self.cancelled

    @property
    def exit_code(self) -> int:
        return 0 if self.passed else 1


@dataclass
class LoadedSuite:
    path: Path
    suite: TestSuite | None = None
    error: HarborQAError | None = None

    @property
    def name(self) -> str:
        return self.suite.name if self.suite is not None else self.path.parent.name


@dataclass
class DryRunEntry:
    """Validation outcome for one suite file."""

    path: Path
    suite: TestSuite | None = None
    issues: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.suite is not None and not self.issues


def _issues_of(error: HarborQAError) -> list[str]:
    if isinstance(error, SuiteValidationError) and error.issues:
        return [format_issue(issue) for issue in error.issues]
    return [str(error)]


def load_suites(
    paths: Iterable[Path],
    registries: Registries,
    startup_timeout: float | None = None,
) -> list[LoadedSuite]:
    """Load every path; a broken suite does not prevent loading the rest."""
    loaded = []
    for path in paths:
        try:
            loaded.append(LoadedSuite(path=path, suite=load_suite(path, registries, startup_timeout)))
        except HarborQAError as e:
            logger.warning(f"Failed to load suite {path}: {e}")
            loaded.append(LoadedSuite(path=path, error=e))
    return loaded


def dry_run(
    path_or_base: str | Path,
    registries: Registries,
    startup_timeout: float | None = None,
) -> list[DryRunEntry]:
    """Parse and validate suites without touching the container runtime.

    ``path_or_base`` is either one suite file or a base directory whose
    ``tests/*/suite.yml`` files are all checked.
    """
    target = Path(path_or_base)
    paths = [target] if target.is_file() else discover_suites(target)

    entries = []
    for loaded in load_suites(paths, registries, startup_timeout):
        entry = DryRunEntry(path=loaded.path, suite=loaded.suite)
        if loaded.error is not None:
            entry.issues = _issues_of(loaded.error)
        entries.append(entry)
    return entries


class Runner:
    """Runs the suites found under ``settings.base_dir``.

    Example:
        >>> runner = Runner(settings, builtin_registries(), get_runtime(), consumers=[reporter])
        >>> summary = runner.run(SuiteFilter.parse("api*"), parallel=True)
        >>> sys.exit(summary.exit_code)
    """

    def __init__(
        self,
        settings: HarborSettings,
        registries: Registries,
        runtime: ContainerRuntime,
        cleanup: CleanupRegistry | None = None,
        consumers: Iterable[Consumer] = (),
        ports: PortAllocator | None = None,
    ) -> None:
        self.settings = settings
        self.registries = registries
        self.runtime = runtime
        self.cleanup = cleanup or CleanupRegistry()
        self.consumers = list(consumers)
        self.ports = ports or get_port_allocator()
        self.session = new_session_id()

    def load(self, filters: SuiteFilter | None = None) -> list[LoadedSuite]:
        filters = filters or SuiteFilter()
        loaded = load_suites(
            discover_suites(self.settings.base_dir),
            self.registries,
            startup_timeout=self.settings.startup_timeout,
        )
        selected = [item for item in loaded if filters.matches(item.name)]
        if filters and not selected:
            logger.warning(f"No suites match filter {', '.join(filters.terms)}")
        return selected

    def run(
        self,
        filters: SuiteFilter | None = None,
        parallel: bool = False,
        token: CancellationToken | None = None,
    ) -> RunSummary:
        token = token or CancellationToken()
        started = time.monotonic()
        loaded = self.load(filters)

        bus = EventBus()
        for consumer in self.consumers:
            bus.subscribe(consumer)
        bus.start()

        config = SuiteRunnerConfig.from_settings(self.settings)
        suite_runner = SuiteRunner(
            self.runtime,
            self.cleanup,
            bus,
            config=config,
            ports=self.ports,
            session=self.session,
            build_semaphore=threading.Semaphore(config.workers),
        )

        try:
            if parallel and len(loaded) > 1:
                with ThreadPoolExecutor(max_workers=config.workers, thread_name_prefix="harborqa-suite") as pool:
                    results = list(pool.map(lambda item: self._run_one(suite_runner, bus, item, token), loaded))
            else:
                results = [self._run_one(suite_runner, bus, item, token) for item in loaded]
        finally:
            bus.close()

        if self.settings.cleanup_cache and not token.interrupted:
            prune_image_cache(self.runtime, keep_session=self.session)

        summary = RunSummary(
            results=results,
            tally=bus.accumulator.tally,
            cancelled=token.interrupted or any(result.cancelled for result in results),
            duration=time.monotonic() - started,
        )
        logger.info(
            f"Run finished in {summary.duration:.2f}s: "
            f"{sum(1 for r in results if r.passed)}/{len(results)} suites passed"
        )
        return summary

    def _run_one(
        self,
        suite_runner: SuiteRunner,
        bus: EventBus,
        item: LoadedSuite,
        token: CancellationToken,
    ) -> SuiteResult:
        if item.suite is None:
            result = SuiteResult(name=item.name, setup_error=item.error, path=str(item.path))
            bus.publish(Event(type=EventType.SUITE_ERROR, message=f"Suite {item.name}: {item.error}", suite=item.name))
            bus.publish(self._finished(result))
            return result

        if token.cancelled:
            result = SuiteResult(name=item.name, cancelled=True, path=str(item.path))
            bus.publish(Event(type=EventType.SUITE_SKIPPED, message=f"Skipped suite {item.name}", suite=item.name))
            bus.publish(self._finished(result))
            return result

        return suite_runner.run(item.suite, token)

    @staticmethod
    def _finished(result: SuiteResult) -> SuiteFinishedEvent:
        return SuiteFinishedEvent(
            type=EventType.SUITE_FINISHED,
            message=f"Suite {result.name} {result.status}",
            suite=result.name,
            data=result.counts(),
            result=result,
        )
