"""Container runtime access."""

from harborqa.infra.base import (
    BUILTIN_NETWORKS,
    LABEL_MANAGED,
    LABEL_SESSION,
    LABEL_SUITE,
    LABEL_UNIT,
    ContainerInfo,
    ContainerRuntime,
    ContainerSpec,
    ContainerState,
    ImageInfo,
    NetworkInfo,
)
from harborqa.infra.docker import DockerCLI, get_runtime

__all__ = [
    "BUILTIN_NETWORKS",
    "LABEL_MANAGED",
    "LABEL_SESSION",
    "LABEL_SUITE",
    "LABEL_UNIT",
    "ContainerInfo",
    "ContainerRuntime",
    "ContainerSpec",
    "ContainerState",
    "DockerCLI",
    "ImageInfo",
    "NetworkInfo",
    "get_runtime",
]
