"""Deletion obligations for resources created during a run."""

from __future__ import annotations

import logging
import shutil
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

from harborqa.errors.base import ResourceNotFoundError
from harborqa.infra.base import ContainerRuntime

logger = logging.getLogger(__name__)


class ResourceKind(Enum):
    """Resource kinds, declared in removal order."""

    CONTAINER = "container"
    NETWORK = "network"
    FILE = "file"

    @property
    def order(self) -> int:
        return CLEANUP_ORDER.index(self)


CLEANUP_ORDER: list[ResourceKind] = list(ResourceKind)


class CleanupTarget(ABC):
    """A handle to one resource. Holds the identity, never the resource."""

    kind: ResourceKind

    def __init__(
        self,
        resource_id: str,
        name: str | None = None,
        suite: str | None = None,
        created_at: datetime | None = None,
    ) -> None:
        self.resource_id = resource_id
        self.name = name or resource_id
        self.suite = suite
        self.created_at = created_at or datetime.now(timezone.utc)

    @property
    def key(self) -> tuple[ResourceKind, str]:
        return (self.kind, self.resource_id)

    def matches(self, identity: str) -> bool:
        """True if ``identity`` is this resource's name, id, or an id prefix."""
        if not identity:
            return False
        if identity in (self.name, self.resource_id):
            return True
        short, full = sorted((identity, self.resource_id), key=len)
        return len(short) >= 12 and full.startswith(short)

    def metadata(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "id": self.resource_id,
            "name": self.name,
            "suite": self.suite,
            "created_at": self.created_at.isoformat(),
        }

    @abstractmethod
    def cleanup(self) -> None:
        """Remove the underlying resource. Already-gone is success."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"


class ContainerTarget(CleanupTarget):
    kind = ResourceKind.CONTAINER

    def __init__(self, runtime: ContainerRuntime, resource_id: str, **kwargs: Any) -> None:
        super().__init__(resource_id, **kwargs)
        self.runtime = runtime

    def cleanup(self) -> None:
        try:
            self.runtime.remove_container(self.resource_id, force=True)
        except ResourceNotFoundError:
            logger.debug(f"Container {self.name} already removed")


class NetworkTarget(CleanupTarget):
    kind = ResourceKind.NETWORK

    def __init__(self, runtime: ContainerRuntime, resource_id: str, **kwargs: Any) -> None:
        super().__init__(resource_id, **kwargs)
        self.runtime = runtime

    def cleanup(self) -> None:
        try:
            self.runtime.remove_network(self.resource_id)
        except ResourceNotFoundError:
            logger.debug(f"Network {self.name} already removed")


class FileTarget(CleanupTarget):
    """A temporary file or directory written for a container to mount."""

    kind = ResourceKind.FILE

    def __init__(self, path: str | Path, **kwargs: Any) -> None:
        self.path = Path(path)
        super().__init__(str(self.path), **kwargs)

    def cleanup(self) -> None:
        if self.path.is_dir():
            shutil.rmtree(self.path)
        elif self.path.exists():
            self.path.unlink()
