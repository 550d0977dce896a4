"""Teardown ledger and orphan cleanup."""

from harborqa.cleanup.discovery import DiscoveredResource, DiscoverOptions, ResourceDiscoverer
from harborqa.cleanup.images import prune_image_cache
from harborqa.cleanup.orchestrator import (
    CleanupOrchestrator,
    CleanupResult,
    ResourceType,
    format_cleanup_result,
)
from harborqa.cleanup.registry import CleanupRegistry
from harborqa.cleanup.targets import (
    CLEANUP_ORDER,
    CleanupTarget,
    ContainerTarget,
    FileTarget,
    NetworkTarget,
    ResourceKind,
)

__all__ = [
    "CLEANUP_ORDER",
    "CleanupOrchestrator",
    "CleanupRegistry",
    "CleanupResult",
    "CleanupTarget",
    "ContainerTarget",
    "DiscoverOptions",
    "DiscoveredResource",
    "FileTarget",
    "NetworkTarget",
    "ResourceDiscoverer",
    "ResourceKind",
    "ResourceType",
    "format_cleanup_result",
    "prune_image_cache",
]
