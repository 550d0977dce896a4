"""Pytest fixtures for harborqa tests."""

from __future__ import annotations

import itertools
import threading
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import pytest

from harborqa.cleanup.registry import CleanupRegistry
from harborqa.cleanup.targets import ContainerTarget
from harborqa.core.cancellation import CancellationToken
from harborqa.core.events import Event
from harborqa.core.ports import PortAllocator
from harborqa.core.registry import DecodeContext, Registries
from harborqa.core.suite import TestSuite
from harborqa.core.test import SuiteTest, TestResult, TestRunOptions
from harborqa.core.unit import Unit, UnitStartOptions
from harborqa.errors.base import ResourceNotFoundError, SetupError
from harborqa.infra.base import ContainerInfo, ContainerSpec, ContainerState, ImageInfo, NetworkInfo


class FakeRuntime:
    """In-memory container runtime.

    ``fail_on`` maps a method name to an exception raised on the next call(s)
    of that method; ``calls`` records every call in order.
    """

    def __init__(self) -> None:
        self.networks: dict[str, NetworkInfo] = {}
        self.containers: dict[str, ContainerInfo] = {}
        self.specs: dict[str, ContainerSpec] = {}
        self.images: set[str] = set()
        self.image_infos: list[ImageInfo] = []
        self.calls: list[tuple[str, Any]] = []
        self.fail_on: dict[str, list[BaseException]] = {}
        self.exec_results: list[tuple[int, str]] = []
        self.logs = ""
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def _record(self, method: str, arg: Any = None) -> None:
        with self._lock:
            self.calls.append((method, arg))
            failures = self.fail_on.get(method)
            if failures:
                raise failures.pop(0)

    def _new_id(self) -> str:
        return f"{next(self._ids):064x}"

    def ping(self) -> None:
        self._record("ping")

    def create_network(self, name: str, labels: dict[str, str] | None = None) -> str:
        self._record("create_network", name)
        network_id = self._new_id()
        self.networks[network_id] = NetworkInfo(id=network_id, name=name, labels=dict(labels or {}))
        return network_id

    def remove_network(self, network: str) -> None:
        self._record("remove_network", network)
        if self.networks.pop(network, None) is None:
            raise ResourceNotFoundError(f"network {network} not found")

    def list_networks(self) -> list[NetworkInfo]:
        return list(self.networks.values())

    def pull_image(self, image: str, timeout: float | None = None) -> None:
        self._record("pull_image", image)
        self.images.add(image)

    def image_exists(self, image: str) -> bool:
        return image in self.images

    def build_image(
        self,
        context_dir: str,
        tag: str,
        dockerfile: str | None = None,
        labels: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> str:
        self._record("build_image", tag)
        self.images.add(tag)
        return tag

    def run_container(self, spec: ContainerSpec) -> str:
        self._record("run_container", spec.name)
        container_id = self._new_id()
        self.specs[container_id] = spec
        self.containers[container_id] = ContainerInfo(
            id=container_id,
            name=spec.name,
            image=spec.image,
            labels=dict(spec.labels),
            state="running",
            networks=[spec.network] if spec.network else [],
        )
        return container_id

    def container_state(self, container: str) -> ContainerState:
        info = self.containers.get(container)
        if info is None:
            raise ResourceNotFoundError(f"container {container} not found")
        return ContainerState(running=info.running, status=info.state, exit_code=0 if info.running else 1)

    def container_logs(self, container: str, tail: int = 50) -> str:
        return self.logs

    def exec_in_container(self, container: str, command: list[str], timeout: float | None = None) -> tuple[int, str]:
        self._record("exec", command)
        if self.exec_results:
            return self.exec_results.pop(0)
        return 0, ""

    def remove_container(self, container: str, force: bool = True) -> None:
        self._record("remove_container", container)
        if self.containers.pop(container, None) is None:
            raise ResourceNotFoundError(f"container {container} not found")

    def list_containers(self) -> list[ContainerInfo]:
        return list(self.containers.values())

    def list_images(self, label: str | None = None) -> list[ImageInfo]:
        self._record("list_images", label)
        return list(self.image_infos)

    def remove_image(self, image: str) -> None:
        self._record("remove_image", image)
        self.image_infos = [i for i in self.image_infos if image != i.id and image not in i.tags]

    def add_network(self, name: str, age: float = 0.0, labels: dict[str, str] | None = None, containers: int = 0) -> str:
        network_id = self._new_id()
        created = datetime.now(timezone.utc).timestamp() - age
        self.networks[network_id] = NetworkInfo(
            id=network_id,
            name=name,
            created_at=datetime.fromtimestamp(created, timezone.utc),
            labels=dict(labels or {}),
            containers=[f"c{i}" for i in range(containers)],
        )
        return network_id

    def add_container(
        self, name: str, age: float = 0.0, state: str = "exited", labels: dict[str, str] | None = None
    ) -> str:
        container_id = self._new_id()
        created = datetime.now(timezone.utc).timestamp() - age
        self.containers[container_id] = ContainerInfo(
            id=container_id,
            name=name,
            created_at=datetime.fromtimestamp(created, timezone.utc),
            labels=dict(labels or {}),
            state=state,
        )
        return container_id

    def count(self, method: str) -> int:
        return sum(1 for name, _ in self.calls if name == method)


class FakeUnit(Unit):
    """Unit that creates one fake container and is ready immediately.

    ``start_failures`` makes the first N starts raise a recoverable
    SetupError; ``ready_check`` replaces the readiness check.
    """

    kind = "fake"

    def __init__(
        self,
        name: str,
        env: dict[str, str] | None = None,
        start_failures: int = 0,
        ready_check: Callable[[], bool] | None = None,
        startup_timeout: float | None = 1.0,
        recoverable: bool = True,
    ) -> None:
        super().__init__(name, startup_timeout=startup_timeout, env=env)
        self.start_failures = start_failures
        self.ready_check = ready_check
        self.recoverable = recoverable
        self.start_calls = 0
        self.container_id: str | None = None
        self.host_port: int | None = None
        self.started_env: dict[str, str] = {}

    def _start(self, options: UnitStartOptions) -> None:
        self.start_calls += 1
        if self.start_calls <= self.start_failures:
            raise SetupError(f"boom {self.start_calls}", recoverable=self.recoverable)
        self.started_env = self.effective_env()
        self.host_port = self.allocate_port()
        self.container_id = options.runtime.run_container(
            ContainerSpec(name=self.container_name(), image="fake:latest", network=options.network, labels=options.labels)
        )
        self.track(ContainerTarget(options.runtime, self.container_id, name=self.container_name(), suite=options.suite))

    def _wait_for_ready(self, token: CancellationToken) -> None:
        if self.ready_check is not None:
            self.poll(token, self.ready_check, interval=0.01)

    def variables(self) -> dict[str, Callable[[], str]]:
        return {
            "host": lambda: "127.0.0.1",
            "port": lambda: str(self.host_port),
            "endpoint": self.external_endpoint,
            "local_endpoint": self.local_endpoint,
        }

    def external_endpoint(self) -> str:
        return f"http://127.0.0.1:{self.host_port}"

    def local_endpoint(self) -> str:
        return f"http://{self.name}:80"


class FakeTest(SuiteTest):
    """Test whose outcome is a canned result, a raised error, or a callable."""

    kind = "fake"

    def __init__(
        self,
        name: str,
        passed: bool = True,
        message: str = "",
        target_name: str | None = None,
        error: BaseException | None = None,
        action: Callable[[TestRunOptions], TestResult] | None = None,
    ) -> None:
        super().__init__(name, target_name=target_name)
        self.passed = passed
        self.message = message
        self.error = error
        self.action = action
        self.runs = 0
        self.seen_endpoint: str | None = None

    def on_initialize(self, target: Unit) -> None:
        self.seen_endpoint = target.external_endpoint()

    def run(self, options: TestRunOptions) -> TestResult:
        self.runs += 1
        if self.error is not None:
            raise self.error
        if self.action is not None:
            return self.action(options)
        if self.passed:
            return TestResult.success(self.name, self.message)
        return TestResult.failure(self.name, self.message or "failed")


class RecordingSink:
    """Synchronous sink and bus consumer that keeps every event."""

    def __init__(self) -> None:
        self.events: list[Event] = []
        self.closed = False
        self._lock = threading.Lock()

    def publish(self, event: Event) -> None:
        with self._lock:
            self.events.append(event)

    handle = publish

    def close(self) -> None:
        self.closed = True

    def types(self) -> list[Any]:
        return [event.type for event in self.events]

    def of_type(self, event_type: Any) -> list[Event]:
        return [event for event in self.events if event.type == event_type]


def fake_registries() -> Registries:
    registries = Registries()

    def build_unit(config: dict[str, Any], context: DecodeContext) -> FakeUnit:
        return FakeUnit(config["name"], env=config.get("env"))

    def build_test(config: dict[str, Any], context: DecodeContext) -> FakeTest:
        return FakeTest(
            config["name"],
            passed=config.get("passed", True),
            message=config.get("message", ""),
            target_name=config.get("target"),
        )

    registries.units.register("fake", build_unit)
    registries.tests.register("fake", build_test)
    return registries


def write_suite(base: Path, name: str, body: str) -> Path:
    suite_dir = base / "tests" / name
    suite_dir.mkdir(parents=True, exist_ok=True)
    path = suite_dir / "suite.yml"
    path.write_text(body)
    return path


@pytest.fixture
def runtime() -> FakeRuntime:
    return FakeRuntime()


@pytest.fixture
def cleanup_registry() -> CleanupRegistry:
    return CleanupRegistry()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def ports() -> PortAllocator:
    return PortAllocator()


@pytest.fixture
def start_options(runtime: FakeRuntime, cleanup_registry: CleanupRegistry, sink: RecordingSink, ports: PortAllocator, tmp_path: Path) -> UnitStartOptions:
    return UnitStartOptions(
        network="harborqa-test-net",
        runtime=runtime,
        cleanup=cleanup_registry,
        sink=sink,
        ports=ports,
        suite="suite",
        session="abcd1234",
        working_dir=tmp_path,
        labels={"harborqa.managed": "true"},
    )


@pytest.fixture
def simple_suite() -> TestSuite:
    return TestSuite(
        name="simple",
        units=[FakeUnit("app")],
        tests=[FakeTest("first"), FakeTest("second")],
        target_name="app",
    )


__all__ = [
    "FakeRuntime",
    "FakeTest",
    "FakeUnit",
    "RecordingSink",
    "fake_registries",
    "write_suite",
]
