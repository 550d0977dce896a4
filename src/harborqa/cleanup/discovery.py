"""Scan the container runtime for resources left behind by earlier runs."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone

from harborqa.cleanup.registry import CleanupRegistry
from harborqa.cleanup.targets import ResourceKind
from harborqa.infra.base import BUILTIN_NETWORKS, LABEL_MANAGED, ContainerRuntime

logger = logging.getLogger(__name__)

DEFAULT_PATTERN = "harborqa-"


@dataclass
class DiscoverOptions:
    """Parameters for one discovery pass.

    Attributes:
        older_than: Minimum age in seconds; 0 disables the age filter.
        include_all: Also report young resources, running containers and
            networks that still have containers attached.
        pattern: Name prefix identifying harborqa resources.
    """

    older_than: float = 0.0
    include_all: bool = False
    pattern: str = DEFAULT_PATTERN


@dataclass
class DiscoveredResource:
    kind: ResourceKind
    id: str
    name: str
    created_at: datetime
    age: float
    labels: dict[str, str] = field(default_factory=dict)
    state: str = ""
    attached: int = 0

    @property
    def short_id(self) -> str:
        return self.id[:12]


class ResourceDiscoverer:
    """Finds orphaned harborqa containers and networks.

    A resource belongs to harborqa if it carries the managed label or its
    name starts with the configured pattern. Resources still referenced by
    the live cleanup registry are never reported.
    """

    def __init__(
        self,
        runtime: ContainerRuntime,
        registry: CleanupRegistry | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.runtime = runtime
        self.registry = registry
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def _is_ours(self, name: str, labels: dict[str, str], pattern: str) -> bool:
        if labels.get(LABEL_MANAGED) == "true":
            return True
        return bool(pattern) and name.startswith(pattern)

    def _is_registered(self, kind: ResourceKind, resource_id: str, name: str) -> bool:
        if self.registry is None:
            return False
        return self.registry.is_registered(kind, resource_id) or self.registry.is_registered(kind, name)

    def _too_young(self, age: float, options: DiscoverOptions) -> bool:
        return options.older_than > 0 and age < options.older_than

    def networks(self, options: DiscoverOptions | None = None) -> list[DiscoveredResource]:
        options = options or DiscoverOptions()
        now = self._clock()
        found = []

        for network in self.runtime.list_networks():
            if network.name in BUILTIN_NETWORKS:
                continue
            if not self._is_ours(network.name, network.labels, options.pattern):
                continue
            if self._is_registered(ResourceKind.NETWORK, network.id, network.name):
                logger.debug(f"Network {network.name} is in use by this process, skipping")
                continue

            age = (now - network.created_at).total_seconds()
            attached = len(network.containers)
            if not options.include_all:
                if self._too_young(age, options):
                    continue
                if attached > 0:
                    logger.debug(f"Network {network.name} has {attached} attached container(s), skipping")
                    continue

            found.append(
                DiscoveredResource(
                    kind=ResourceKind.NETWORK,
                    id=network.id,
                    name=network.name,
                    created_at=network.created_at,
                    age=age,
                    labels=network.labels,
                    attached=attached,
                )
            )
        return found

    def containers(self, options: DiscoverOptions | None = None) -> list[DiscoveredResource]:
        options = options or DiscoverOptions()
        now = self._clock()
        found = []

        for container in self.runtime.list_containers():
            if not self._is_ours(container.name, container.labels, options.pattern):
                continue
            if self._is_registered(ResourceKind.CONTAINER, container.id, container.name):
                logger.debug(f"Container {container.name} is in use by this process, skipping")
                continue

            age = (now - container.created_at).total_seconds()
            if not options.include_all:
                if self._too_young(age, options):
                    continue
                if container.running:
                    logger.debug(f"Container {container.name} is running, skipping")
                    continue

            found.append(
                DiscoveredResource(
                    kind=ResourceKind.CONTAINER,
                    id=container.id,
                    name=container.name,
                    created_at=container.created_at,
                    age=age,
                    labels=container.labels,
                    state=container.state,
                )
            )
        return found

    def discover_all(
        self, options: DiscoverOptions | None = None
    ) -> tuple[list[DiscoveredResource], list[DiscoveredResource]]:
        """Return (containers, networks)."""
        return self.containers(options), self.networks(options)
