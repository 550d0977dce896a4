"""Container runtime protocol and the records it returns."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Protocol

LABEL_MANAGED = "harborqa.managed"
LABEL_SUITE = "harborqa.suite"
LABEL_UNIT = "harborqa.unit"
LABEL_SESSION = "harborqa.session"

BUILTIN_NETWORKS = frozenset({"bridge", "host", "none"})


@dataclass
class NetworkInfo:
    """A network as reported by the runtime."""

    id: str
    name: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    labels: dict[str, str] = field(default_factory=dict)
    containers: list[str] = field(default_factory=list)
    driver: str = "bridge"


@dataclass
class ContainerInfo:
    """A container as reported by the runtime."""

    id: str
    name: str
    image: str = ""
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    labels: dict[str, str] = field(default_factory=dict)
    state: str = "created"
    networks: list[str] = field(default_factory=list)

    @property
    def running(self) -> bool:
        return self.state in ("running", "restarting", "paused")


@dataclass
class ImageInfo:
    """An image as reported by the runtime."""

    id: str
    tags: list[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    labels: dict[str, str] = field(default_factory=dict)


@dataclass
class ContainerState:
    """Live state of one container."""

    running: bool
    status: str
    exit_code: int | None = None
    health: str | None = None


@dataclass
class ContainerSpec:
    """Everything needed to run one container."""

    name: str
    image: str
    network: str | None = None
    aliases: list[str] = field(default_factory=list)
    env: dict[str, str] = field(default_factory=dict)
    ports: dict[int, int] = field(default_factory=dict)
    command: list[str] | None = None
    labels: dict[str, str] = field(default_factory=dict)
    volumes: list[tuple[str, str, str]] = field(default_factory=list)


class ContainerRuntime(Protocol):
    """Operations harborqa needs from a container runtime.

    ``ports`` in ContainerSpec maps container port to host port.
    """

    def ping(self) -> None: ...

    def create_network(self, name: str, labels: dict[str, str] | None = None) -> str: ...

    def remove_network(self, network: str) -> None: ...

    def list_networks(self) -> list[NetworkInfo]: ...

    def pull_image(self, image: str, timeout: float | None = None) -> None: ...

    def image_exists(self, image: str) -> bool: ...

    def list_images(self, label: str | None = None) -> list[ImageInfo]: ...

    def remove_image(self, image: str) -> None: ...

    def build_image(
        self,
        context_dir: str,
        tag: str,
        dockerfile: str | None = None,
        labels: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> str: ...

    def run_container(self, spec: ContainerSpec) -> str: ...

    def container_state(self, container: str) -> ContainerState: ...

    def container_logs(self, container: str, tail: int = 50) -> str: ...

    def exec_in_container(
        self, container: str, command: list[str], timeout: float | None = None
    ) -> tuple[int, str]: ...

    def remove_container(self, container: str, force: bool = True) -> None: ...

    def list_containers(self) -> list[ContainerInfo]: ...
