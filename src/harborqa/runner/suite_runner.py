"""Runs one suite: setup with retry, sequential tests, unconditional teardown."""

from __future__ import annotations

import logging
import os
import threading
import time
import uuid
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Any

from harborqa.cleanup.registry import CleanupRegistry
from harborqa.cleanup.targets import NetworkTarget
from harborqa.core.cancellation import CancellationToken
from harborqa.core.events import Event, EventSink, EventType, SuiteFinishedEvent, TestCompletedEvent
from harborqa.core.interpolation import plan_unit_waves, resolve_env
from harborqa.core.ports import PortAllocator, get_port_allocator
from harborqa.core.suite import SuiteResult, TestSuite
from harborqa.core.test import SuiteTest, TestResult, TestRunOptions
from harborqa.core.unit import Unit, UnitStartOptions, slugify
from harborqa.errors.base import (
    CleanupError,
    CleanupFailures,
    ConfigurationError,
    ErrorContext,
    HarborQAError,
    OperationCancelledError,
)
from harborqa.errors.retry import RetryConfig, RetryPolicy
from harborqa.infra.base import LABEL_MANAGED, LABEL_SESSION, LABEL_SUITE, ContainerRuntime
from harborqa.runner.scripts import run_script

logger = logging.getLogger(__name__)


def new_session_id() -> str:
    return uuid.uuid4().hex[:8]


@dataclass
class SuiteRunnerConfig:
    """Knobs for suite execution.

    Attributes:
        max_retries: Setup attempts per suite (container build/start/ready).
        retry_delay: Fixed delay between setup attempts, in seconds.
        build_timeout: Upper bound for one image build.
        script_timeout: Upper bound for one lifecycle script, or None.
        network_prefix: Prefix for networks and containers.
        parallelism: Concurrent image builds; defaults to the CPU count.
    """

    max_retries: int = 3
    retry_delay: float = 2.0
    build_timeout: float = 600.0
    script_timeout: float | None = None
    network_prefix: str = "harborqa-"
    parallelism: int | None = None
    verbose: bool = False
    debug: bool = False

    @classmethod
    def from_settings(cls, settings: Any) -> SuiteRunnerConfig:
        return cls(
            max_retries=settings.max_retries,
            retry_delay=settings.retry_delay,
            build_timeout=settings.build_timeout,
            network_prefix=settings.network_prefix,
            parallelism=settings.parallelism,
            verbose=settings.verbose,
            debug=settings.debug,
        )

    @property
    def workers(self) -> int:
        return self.parallelism or os.cpu_count() or 1


class SuiteRunner:
    """Executes one TestSuite against real infrastructure.

    One runner may execute several suites concurrently; the cleanup
    registry, port allocator and build semaphore are shared between them.
    """

    def __init__(
        self,
        runtime: ContainerRuntime,
        cleanup: CleanupRegistry,
        sink: EventSink,
        config: SuiteRunnerConfig | None = None,
        ports: PortAllocator | None = None,
        session: str | None = None,
        build_semaphore: threading.Semaphore | None = None,
    ) -> None:
        self.runtime = runtime
        self.cleanup = cleanup
        self.sink = sink
        self.config = config or SuiteRunnerConfig()
        self.ports = ports or get_port_allocator()
        self.session = session or new_session_id()
        self.build_semaphore = build_semaphore or threading.Semaphore(self.config.workers)

    def run(self, suite: TestSuite, token: CancellationToken) -> SuiteResult:
        started = time.monotonic()
        result = SuiteResult(name=suite.name, path=str(suite.path) if suite.path else None)
        self._emit(EventType.SUITE_STARTED, suite, f"Running suite {suite.name}")

        try:
            suite.validate()
            fixtures = suite.resolved_fixtures()
            waves = plan_unit_waves(suite.units)
        except ConfigurationError as e:
            result.setup_error = e
            return self._finish(suite, result, started)

        try:
            self._setup_with_retry(suite, waves, fixtures, token)
            if suite.before_all:
                self._script(suite, suite.before_all, "before_all", token)
            self._run_tests(suite, fixtures, token, result)
            if suite.after_all:
                try:
                    self._script(suite, suite.after_all, "after_all", token)
                except HarborQAError as e:
                    result.errors.append(str(e))
        except OperationCancelledError:
            result.cancelled = True
        except HarborQAError as e:
            result.setup_error = e
        finally:
            result.cleanup_errors.extend(self._teardown(suite))

        if token.interrupted:
            result.cancelled = True
        return self._finish(suite, result, started)

    # Setup

    def _setup_with_retry(
        self,
        suite: TestSuite,
        waves: list[list[Unit]],
        fixtures: dict[str, str],
        token: CancellationToken,
    ) -> None:
        def on_retry(attempt: int, error: BaseException, delay: float) -> None:
            self._emit(
                EventType.TEST_RETRYING,
                suite,
                f"Setup of suite {suite.name} failed (attempt {attempt}/{self.config.max_retries}), "
                f"retrying in {delay:.1f}s: {error}",
                attempt=attempt,
            )
            for message in self._teardown(suite):
                logger.warning(f"Cleanup before retry: {message}")

        policy = RetryPolicy(
            RetryConfig.from_settings(self.config.max_retries, self.config.retry_delay, on_retry=on_retry)
        )
        policy.execute(lambda: self._setup(suite, waves, fixtures, token), token=token)

    def _setup(
        self,
        suite: TestSuite,
        waves: list[list[Unit]],
        fixtures: dict[str, str],
        token: CancellationToken,
    ) -> None:
        token.raise_if_cancelled()
        labels = {
            LABEL_MANAGED: "true",
            LABEL_SUITE: suite.name,
            LABEL_SESSION: self.session,
        }

        network = f"{self.config.network_prefix}{slugify(suite.name)}-{uuid.uuid4().hex[:8]}"
        network_id = self.runtime.create_network(network, labels)
        self.cleanup.register(NetworkTarget(self.runtime, network_id, name=network, suite=suite.name))
        self._emit(EventType.NETWORK_CREATED, suite, f"Created network {network}", network=network)

        options = UnitStartOptions(
            network=network,
            runtime=self.runtime,
            cleanup=self.cleanup,
            token=token,
            sink=self.sink,
            ports=self.ports,
            suite=suite.name,
            session=self.session,
            working_dir=suite.working_dir,
            fixtures=fixtures,
            build_timeout=self.config.build_timeout,
            build_semaphore=self.build_semaphore,
            labels=labels,
            name_prefix=self.config.network_prefix,
            verbose=self.config.verbose,
            debug=self.config.debug,
        )
        by_name = {unit.name: unit for unit in suite.units}

        for wave in waves:
            token.raise_if_cancelled()
            if len(wave) == 1:
                self._start_unit(wave[0], by_name, fixtures, options)
                continue

            errors: list[BaseException] = []
            with ThreadPoolExecutor(
                max_workers=min(len(wave), self.config.workers),
                thread_name_prefix=f"harborqa-{slugify(suite.name)}",
            ) as pool:
                futures = [pool.submit(self._start_unit, unit, by_name, fixtures, options) for unit in wave]
                for future in as_completed(futures):
                    error = future.exception()
                    if error is not None:
                        errors.append(error)
            if errors:
                errors.sort(key=lambda e: isinstance(e, OperationCancelledError))
                raise errors[0]

    def _start_unit(
        self,
        unit: Unit,
        by_name: dict[str, Unit],
        fixtures: dict[str, str],
        options: UnitStartOptions,
    ) -> None:
        unit.set_env(resolve_env(unit, by_name, fixtures))
        unit.start(options)
        unit.wait_for_ready(options.token)

    # Tests

    def _run_tests(
        self,
        suite: TestSuite,
        fixtures: dict[str, str],
        token: CancellationToken,
        result: SuiteResult,
    ) -> None:
        for index, test in enumerate(suite.tests):
            if token.cancelled:
                result.cancelled = True
                for remaining in suite.tests[index:]:
                    skipped = TestResult.skip(remaining.name, "run cancelled", suite=suite.name, kind=remaining.kind)
                    result.results.append(skipped)
                    self._publish(
                        TestCompletedEvent(
                            type=EventType.TEST_SKIPPED,
                            message=f"Skipped test {remaining.name}",
                            suite=suite.name,
                            test=remaining.name,
                            result=skipped,
                        )
                    )
                return
            result.results.append(self._run_test(suite, test, fixtures, token))

    def _run_test(
        self,
        suite: TestSuite,
        test: SuiteTest,
        fixtures: dict[str, str],
        token: CancellationToken,
    ) -> TestResult:
        self._emit(EventType.TEST_STARTED, suite, f"Running test {test.name} in suite {suite.name}", test=test.name)
        started = time.monotonic()

        try:
            if suite.before_each:
                self._script(suite, suite.before_each, "before_each", token)
            test.initialize(suite)
            outcome = test.run(
                TestRunOptions(
                    token=token,
                    fixtures=fixtures,
                    working_dir=suite.working_dir,
                    verbose=self.config.verbose,
                )
            )
        except OperationCancelledError:
            outcome = TestResult.failure(test.name, "cancelled")
        except HarborQAError as e:
            outcome = TestResult.failure(test.name, str(e))
        except Exception as e:
            logger.debug(f"Test {test.name} raised", exc_info=True)
            outcome = TestResult.failure(test.name, f"{type(e).__name__}: {e}")

        if suite.after_each:
            try:
                self._script(suite, suite.after_each, "after_each", token)
            except HarborQAError as e:
                if outcome.passed:
                    outcome = TestResult.failure(test.name, f"after_each failed: {e}")

        outcome = outcome.with_timing(time.monotonic() - started, suite=suite.name, kind=test.kind)
        self._publish(
            TestCompletedEvent(
                type=EventType.TEST_COMPLETED,
                message=f"Test {test.name} {outcome.status}",
                suite=suite.name,
                test=test.name,
                result=outcome,
            )
        )
        return outcome

    def _script(self, suite: TestSuite, command: str, phase: str, token: CancellationToken) -> None:
        self._emit(EventType.SCRIPT_EXECUTING, suite, f"Running {phase}: {command}", phase=phase)
        try:
            run_script(
                command,
                suite.working_dir,
                token,
                timeout=self.config.script_timeout,
                context=ErrorContext(suite=suite.name, operation=phase),
            )
        except HarborQAError as e:
            self._emit(EventType.SCRIPT_FAILED, suite, f"{phase} failed: {e}", phase=phase)
            raise
        self._emit(EventType.SCRIPT_COMPLETED, suite, f"{phase} completed: {command}", phase=phase)

    # Teardown

    def _teardown(self, suite: TestSuite) -> list[str]:
        """Stop every unit, then remove whatever the suite still has registered."""
        self._emit(EventType.CLEANUP_STARTED, suite, f"Cleaning up suite {suite.name}")
        errors: list[str] = []

        for unit in reversed(suite.units):
            try:
                unit.stop()
            except CleanupError as e:
                errors.append(str(e))

        try:
            self.cleanup.cleanup_suite(suite.name)
        except CleanupFailures as e:
            errors.extend(str(error) for error in e.errors)

        for message in errors:
            self._emit(EventType.CLEANUP_FAILED, suite, message)
        if not errors:
            self._emit(EventType.NETWORK_DESTROYED, suite, f"Removed resources of suite {suite.name}")
        self._emit(EventType.CLEANUP_COMPLETED, suite, f"Cleanup of suite {suite.name} finished")
        return errors

    def _finish(self, suite: TestSuite, result: SuiteResult, started: float) -> SuiteResult:
        result.duration = time.monotonic() - started
        if result.passed:
            self._emit(EventType.SUITE_COMPLETED, suite, f"Suite {suite.name} passed")
        else:
            reason = str(result.setup_error) if result.setup_error else result.status
            self._emit(EventType.SUITE_ERROR, suite, f"Suite {suite.name} {result.status}: {reason}")

        self._publish(
            SuiteFinishedEvent(
                type=EventType.SUITE_FINISHED,
                message=f"Suite {suite.name} finished in {result.duration:.2f}s",
                suite=suite.name,
                data=result.counts(),
                result=result,
            )
        )
        return result

    def _emit(self, event_type: EventType, suite: TestSuite, message: str, test: str | None = None, **data: Any) -> None:
        self._publish(Event(type=event_type, message=message, suite=suite.name, test=test, data=data))

    def _publish(self, event: Event) -> None:
        self.sink.publish(event)
