"""Tests for pruning images built by earlier runs."""

from __future__ import annotations

from harborqa.cleanup import prune_image_cache
from harborqa.errors import DockerError
from harborqa.infra.base import LABEL_MANAGED, LABEL_SESSION, ImageInfo
from tests.conftest import FakeRuntime


def built(image_id: str, session: str, *tags: str) -> ImageInfo:
    return ImageInfo(id=image_id, tags=list(tags), labels={LABEL_MANAGED: "true", LABEL_SESSION: session})


class TestPruneImageCache:
    def test_keeps_images_of_the_current_session(self) -> None:
        runtime = FakeRuntime()
        runtime.image_infos = [built("sha256:a", "old", "hq-api:old"), built("sha256:b", "now", "hq-api:now")]

        removed = prune_image_cache(runtime, keep_session="now")

        assert removed == ["hq-api:old"]
        assert [i.id for i in runtime.image_infos] == ["sha256:b"]
        assert ("list_images", f"{LABEL_MANAGED}=true") in runtime.calls

    def test_unmanaged_images_are_left_alone(self) -> None:
        runtime = FakeRuntime()
        runtime.image_infos = [ImageInfo(id="sha256:c", tags=["postgres:16"], labels={LABEL_SESSION: "old"})]

        assert prune_image_cache(runtime, keep_session="now") == []
        assert runtime.count("remove_image") == 0

    def test_every_tag_is_removed_and_untagged_images_by_id(self) -> None:
        runtime = FakeRuntime()
        runtime.image_infos = [built("sha256:d", "old", "hq-a:1", "hq-a:latest"), built("sha256:e", "old")]

        removed = prune_image_cache(runtime, keep_session="now")

        assert removed == ["hq-a:1", "hq-a:latest", "sha256:e"]
        assert runtime.image_infos == []

    def test_removal_errors_are_skipped(self) -> None:
        runtime = FakeRuntime()
        runtime.image_infos = [built("sha256:f", "old", "hq-in-use:1"), built("sha256:g", "old", "hq-free:1")]
        runtime.fail_on["remove_image"] = [DockerError("image is being used by a running container")]

        removed = prune_image_cache(runtime, keep_session="now")

        assert removed == ["hq-free:1"]
        assert runtime.count("remove_image") == 2
