"""Remove images built by earlier runs (``run --cleanup-cache``)."""

from __future__ import annotations

import logging

from harborqa.errors.base import DockerError
from harborqa.infra.base import LABEL_MANAGED, LABEL_SESSION, ContainerRuntime

logger = logging.getLogger(__name__)


def prune_image_cache(runtime: ContainerRuntime, keep_session: str) -> list[str]:
    """Remove harborqa-built images whose session is not ``keep_session``.

    Images are removed tag by tag; an untagged image is removed by id.
    Failures are logged and skipped. Returns what was removed.
    """
    removed = []
    for image in runtime.list_images(label=f"{LABEL_MANAGED}=true"):
        if image.labels.get(LABEL_MANAGED) != "true" or image.labels.get(LABEL_SESSION) == keep_session:
            continue
        for ref in image.tags or [image.id]:
            try:
                runtime.remove_image(ref)
            except DockerError as e:
                logger.warning(f"Could not remove cached image {ref}: {e.message}")
                continue
            removed.append(ref)
    if removed:
        logger.info(f"Removed {len(removed)} cached image(s) from earlier runs")
    return removed
