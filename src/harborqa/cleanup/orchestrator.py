"""Out-of-band removal of orphaned containers and networks."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum

from harborqa.cleanup.discovery import DiscoveredResource, DiscoverOptions, ResourceDiscoverer
from harborqa.cleanup.registry import CleanupRegistry
from harborqa.cleanup.targets import ContainerTarget, NetworkTarget, ResourceKind
from harborqa.core.cancellation import CancellationToken
from harborqa.errors.base import CleanupFailures
from harborqa.infra.base import ContainerRuntime

logger = logging.getLogger(__name__)

DEFAULT_CLEANUP_TIMEOUT = 60.0


class ResourceType(Enum):
    """What the cleanup command targets."""

    NETWORKS = "networks"
    CONTAINERS = "containers"
    ALL = "all"

    @property
    def includes_containers(self) -> bool:
        return self in (ResourceType.CONTAINERS, ResourceType.ALL)

    @property
    def includes_networks(self) -> bool:
        return self in (ResourceType.NETWORKS, ResourceType.ALL)


@dataclass
class KindCounts:
    found: int = 0
    removed: int = 0
    failed: int = 0


@dataclass
class CleanupResult:
    """Outcome of one cleanup invocation. ``removed + failed <= found``."""

    containers: KindCounts = field(default_factory=KindCounts)
    networks: KindCounts = field(default_factory=KindCounts)
    removed_names: list[str] = field(default_factory=list)
    failed_names: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    found_containers: list[DiscoveredResource] = field(default_factory=list)
    found_networks: list[DiscoveredResource] = field(default_factory=list)
    duration: float = 0.0
    dry_run: bool = False

    @property
    def total_found(self) -> int:
        return self.containers.found + self.networks.found

    @property
    def total_failed(self) -> int:
        return self.containers.failed + self.networks.failed

    @property
    def success(self) -> bool:
        return self.total_failed == 0 and not self.errors


class CleanupOrchestrator:
    """Discovers orphans and removes them through a fresh CleanupRegistry."""

    def __init__(
        self,
        runtime: ContainerRuntime,
        discoverer: ResourceDiscoverer | None = None,
        timeout: float = DEFAULT_CLEANUP_TIMEOUT,
    ) -> None:
        self.runtime = runtime
        self.discoverer = discoverer or ResourceDiscoverer(runtime)
        self.timeout = timeout

    def discover(
        self, resource_type: ResourceType, options: DiscoverOptions
    ) -> tuple[list[DiscoveredResource], list[DiscoveredResource]]:
        containers = self.discoverer.containers(options) if resource_type.includes_containers else []
        networks = self.discoverer.networks(options) if resource_type.includes_networks else []
        return containers, networks

    def run(
        self,
        resource_type: ResourceType = ResourceType.ALL,
        options: DiscoverOptions | None = None,
        dry_run: bool = False,
        token: CancellationToken | None = None,
    ) -> CleanupResult:
        options = options or DiscoverOptions()
        started = time.monotonic()

        containers, networks = self.discover(resource_type, options)
        result = CleanupResult(
            containers=KindCounts(found=len(containers)),
            networks=KindCounts(found=len(networks)),
            found_containers=containers,
            found_networks=networks,
            dry_run=dry_run,
        )
        logger.info(f"Discovered {len(containers)} orphaned container(s) and {len(networks)} network(s)")

        if dry_run or result.total_found == 0:
            result.duration = time.monotonic() - started
            return result

        registry = CleanupRegistry()
        for resource in containers:
            registry.register(ContainerTarget(self.runtime, resource.id, name=resource.name))
        for resource in networks:
            registry.register(NetworkTarget(self.runtime, resource.id, name=resource.name))

        deadline = token.child(self.timeout) if token is not None else CancellationToken(timeout=self.timeout)
        try:
            registry.cleanup_all(deadline)
        except CleanupFailures as e:
            result.errors.extend(str(error) for error in e.errors)
        finally:
            deadline.close()

        self._tally(result, registry, containers, ResourceKind.CONTAINER, result.containers)
        self._tally(result, registry, networks, ResourceKind.NETWORK, result.networks)

        result.duration = time.monotonic() - started
        return result

    @staticmethod
    def _tally(
        result: CleanupResult,
        registry: CleanupRegistry,
        resources: list[DiscoveredResource],
        kind: ResourceKind,
        counts: KindCounts,
    ) -> None:
        leftover = {target.resource_id for target in registry.list_by_kind(kind)}
        for resource in resources:
            if resource.id in leftover:
                counts.failed += 1
                result.failed_names.append(resource.name)
            else:
                counts.removed += 1
                result.removed_names.append(resource.name)


def format_age(seconds: float) -> str:
    seconds = int(max(0, seconds))
    if seconds < 60:
        return f"{seconds}s"
    if seconds < 3600:
        return f"{seconds // 60}m"
    if seconds < 86400:
        return f"{seconds // 3600}h{(seconds % 3600) // 60}m"
    return f"{seconds // 86400}d{(seconds % 86400) // 3600}h"


def format_cleanup_result(result: CleanupResult, verbose: bool = False) -> str:
    """Render a human-readable summary of a cleanup run."""
    if result.total_found == 0:
        return "No orphaned resources found."

    lines: list[str] = []
    if result.dry_run:
        lines.append("Dry run: nothing was removed.")
        lines.append("")
        lines.append(f"Containers: {result.containers.found} found")
        for resource in result.found_containers:
            lines.append(f"  - {resource.name} ({resource.short_id}, {resource.state or 'unknown'}, age {format_age(resource.age)})")
        lines.append(f"Networks:   {result.networks.found} found")
        for resource in result.found_networks:
            lines.append(f"  - {resource.name} ({resource.short_id}, age {format_age(resource.age)})")
        return "\n".join(lines)

    lines.append(f"Cleanup completed in {result.duration:.2f}s")
    lines.append("")
    for label, counts in (("Containers:", result.containers), ("Networks:", result.networks)):
        line = f"{label:<12}{counts.found} found, {counts.removed} removed"
        if counts.failed:
            line += f", {counts.failed} failed"
        lines.append(line)

    if verbose and result.removed_names:
        lines.append("")
        lines.append("Removed:")
        lines.extend(f"  ✓ {name}" for name in result.removed_names)

    if result.errors:
        lines.append("")
        lines.append("Errors occurred during cleanup:")
        lines.extend(f"  ✖ {error}" for error in result.errors)

    return "\n".join(lines)
