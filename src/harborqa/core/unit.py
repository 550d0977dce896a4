"""Unit contract implemented by every service adapter."""

from __future__ import annotations

import logging
import re
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any

from harborqa.core.cancellation import CancellationToken
from harborqa.core.events import Event, EventSink, EventType, NullSink
from harborqa.core.ports import PortAllocator, get_port_allocator
from harborqa.errors.base import (
    CleanupError,
    ErrorContext,
    HarborQAError,
    OperationCancelledError,
    ReadinessTimeoutError,
    SetupError,
    UnknownVariableError,
)

if TYPE_CHECKING:
    from harborqa.cleanup.registry import CleanupRegistry
    from harborqa.cleanup.targets import CleanupTarget
    from harborqa.infra.base import ContainerRuntime

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 0.5

_UNSAFE_NAME_CHARS = re.compile(r"[^a-zA-Z0-9_.-]+")


def slugify(value: str) -> str:
    return _UNSAFE_NAME_CHARS.sub("-", value).strip("-").lower()


class UnitState(Enum):
    UNINITIALIZED = "uninitialized"
    STARTING = "starting"
    READY = "ready"
    STOPPED = "stopped"
    FAILED = "failed"


@dataclass
class UnitStartOptions:
    """Everything a unit needs to create its infrastructure."""

    network: str
    runtime: ContainerRuntime
    cleanup: CleanupRegistry
    token: CancellationToken = field(default_factory=CancellationToken)
    sink: EventSink = field(default_factory=NullSink)
    ports: PortAllocator = field(default_factory=get_port_allocator)
    suite: str = ""
    session: str = ""
    working_dir: Path = field(default_factory=Path.cwd)
    fixtures: dict[str, str] = field(default_factory=dict)
    build_timeout: float = 600.0
    build_semaphore: threading.Semaphore | None = None
    labels: dict[str, str] = field(default_factory=dict)
    name_prefix: str = "harborqa-"
    verbose: bool = False
    debug: bool = False


class Unit(ABC):
    """One service instance inside a suite network.

    ``start``, ``wait_for_ready`` and ``stop`` drive the state machine
    UNINITIALIZED -> STARTING -> READY -> STOPPED/FAILED and emit the
    container events; adapters implement the ``_start``/``_wait_for_ready``
    hooks and register whatever they create through ``track``.
    """

    kind: str = ""
    default_startup_timeout: float = 30.0

    def __init__(self, name: str, startup_timeout: float | None = None, env: dict[str, str] | None = None) -> None:
        self.name = name
        self.startup_timeout = startup_timeout if startup_timeout is not None else self.default_startup_timeout
        self.env: dict[str, str] = dict(env or {})
        self._resolved_env: dict[str, str] | None = None
        self.state = UnitState.UNINITIALIZED
        self.options: UnitStartOptions | None = None
        self._lock = threading.Lock()
        self._targets: list[CleanupTarget] = []
        self._ports: list[int] = []

    # Adapter hooks

    @abstractmethod
    def _start(self, options: UnitStartOptions) -> None:
        """Create the infrastructure. Returns once creation is accepted."""

    @abstractmethod
    def _wait_for_ready(self, token: CancellationToken) -> None:
        """Block until the readiness check succeeds or ``token`` is cancelled."""

    def _stop(self) -> None:
        """Extra teardown beyond the tracked cleanup targets."""

    @abstractmethod
    def variables(self) -> dict[str, Callable[[], str]]:
        """Connection variables exposed through ``get``."""

    @abstractmethod
    def external_endpoint(self) -> str:
        """Address reachable from the host (tests run here)."""

    @abstractmethod
    def local_endpoint(self) -> str:
        """Address reachable from other containers on the suite network."""

    # Lifecycle

    def start(self, options: UnitStartOptions) -> None:
        with self._lock:
            if self.state in (UnitState.STARTING, UnitState.READY):
                raise SetupError(
                    f"unit '{self.name}' is already {self.state.value}",
                    context=self._context("start"),
                    recoverable=False,
                )
            self.state = UnitState.STARTING
            self.options = options

        self._emit(EventType.CONTAINER_STARTING, f"Starting {self.kind} unit {self.name}")
        try:
            options.token.raise_if_cancelled()
            self._start(options)
        except Exception as e:
            self._fail("start", e)
            wrapped = self._wrap("start", e)
            if wrapped is e:
                raise
            raise wrapped from e
        self._emit(EventType.CONTAINER_STARTED, f"Unit {self.name} started")

    def wait_for_ready(self, token: CancellationToken | None = None) -> None:
        if self.state != UnitState.STARTING:
            raise SetupError(
                f"unit '{self.name}' cannot wait for readiness while {self.state.value}",
                context=self._context("wait_for_ready"),
                recoverable=False,
            )

        parent = token or (self.options.token if self.options else CancellationToken())
        startup = parent.child(timeout=self.startup_timeout)
        try:
            self._wait_for_ready(startup)
        except Exception as e:
            self._fail("wait_for_ready", e)
            wrapped = self._wrap("wait_for_ready", e)
            if wrapped is e:
                raise
            raise wrapped from e
        finally:
            startup.close()

        with self._lock:
            self.state = UnitState.READY
        self._emit(EventType.CONTAINER_HEALTHY, f"Unit {self.name} is ready at {self.external_endpoint()}")

    def stop(self) -> None:
        """Tear down best-effort. Safe before start and safe to repeat.

        Raises:
            CleanupError: the first removal that failed; every target is
                still attempted.
        """
        with self._lock:
            if self.state in (UnitState.UNINITIALIZED, UnitState.STOPPED):
                return
            self.state = UnitState.STOPPED
            targets = list(reversed(self._targets))
            ports = list(self._ports)
            self._targets.clear()
            self._ports.clear()

        errors: list[CleanupError] = []
        registry = self.options.cleanup if self.options else None
        for target in targets:
            try:
                if registry is not None:
                    registry.remove(target)
                else:
                    target.cleanup()
            except CleanupError as e:
                errors.append(e)
            except Exception as e:
                errors.append(CleanupError(target.kind.value, target.name, cause=e))

        try:
            self._stop()
        except Exception as e:
            errors.append(CleanupError("unit", self.name, cause=e))

        if self.options is not None:
            for port in ports:
                self.options.ports.release(port)

        self._emit(EventType.CONTAINER_STOPPED, f"Unit {self.name} stopped")
        if errors:
            for extra in errors[1:]:
                logger.warning(str(extra))
            raise errors[0]

    # Helpers for adapters

    def get(self, variable: str) -> str:
        getters = self.variables()
        if variable not in getters:
            raise UnknownVariableError(self.name, variable, known=sorted(getters))
        return getters[variable]()

    def raw_env(self) -> dict[str, str]:
        """Environment before interpolation of ``{{ unit.var }}`` references."""
        return dict(self.env)

    def set_env(self, env: dict[str, str]) -> None:
        """Set the interpolated environment used by the next ``start``."""
        self._resolved_env = dict(env)

    def effective_env(self) -> dict[str, str]:
        return dict(self._resolved_env if self._resolved_env is not None else self.env)

    def track(self, target: CleanupTarget) -> CleanupTarget:
        """Register ``target`` with the cleanup registry and remember it."""
        assert self.options is not None, "track() called before start()"
        self.options.cleanup.register(target)
        with self._lock:
            self._targets.append(target)
        return target

    def allocate_port(self) -> int:
        assert self.options is not None, "allocate_port() called before start()"
        port = self.options.ports.allocate()
        with self._lock:
            self._ports.append(port)
        return port

    def container_name(self) -> str:
        """``<prefix><suite>-<unit>-<session>``, safe for docker names."""
        assert self.options is not None
        parts = [self.options.suite, self.name, self.options.session]
        body = "-".join(slugify(part) for part in parts if part)
        return f"{self.options.name_prefix}{body}"

    def poll(self, token: CancellationToken, check: Callable[[], bool], interval: float = DEFAULT_POLL_INTERVAL) -> None:
        """Call ``check`` until it returns True, or raise once ``token`` ends."""
        while True:
            try:
                if check():
                    return
            except HarborQAError:
                raise
            except Exception as e:
                logger.debug(f"Readiness check for {self.name} failed: {e}")
            if token.wait(interval):
                break
        if token.interrupted:
            raise OperationCancelledError(
                f"cancelled while waiting for unit '{self.name}'",
                context=self._context("wait_for_ready"),
            )
        raise ReadinessTimeoutError(
            timeout_seconds=self.startup_timeout,
            context=self._context("wait_for_ready"),
        )

    def _context(self, operation: str) -> ErrorContext:
        suite = self.options.suite if self.options else None
        return ErrorContext(suite=suite or None, unit=self.name, operation=operation)

    def _fail(self, operation: str, error: BaseException) -> None:
        with self._lock:
            self.state = UnitState.FAILED
        self._emit(EventType.CONTAINER_FAILED, f"Unit {self.name} failed during {operation}: {error}")

    def _wrap(self, operation: str, error: Exception) -> HarborQAError:
        if isinstance(error, HarborQAError):
            if error.context.unit is None:
                error.context.unit = self.name
                error.context.operation = error.context.operation or operation
                if self.options and self.options.suite:
                    error.context.suite = error.context.suite or self.options.suite
            return error
        return SetupError(
            f"{operation} unit '{self.name}' ({self.kind}): {error}",
            context=self._context(operation),
            cause=error,
        )

    def _emit(self, event_type: EventType, message: str, **data: Any) -> None:
        if self.options is None:
            return
        self.options.sink.publish(
            Event(type=event_type, message=message, suite=self.options.suite or None, unit=self.name, data=data)
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, state={self.state.value})"
