"""Tests for the ``minio`` test kind."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from harborqa.adapters import MinioTest, MinioUnit
from harborqa.adapters.minio_test import CountConstraint, StateVerification, parse_size
from harborqa.core.registry import DecodeContext
from harborqa.core.suite import TestSuite
from harborqa.core.test import TestRunOptions
from harborqa.errors import TargetResolutionError
from tests.conftest import FakeUnit


def not_found(operation: str) -> ClientError:
    return ClientError({"Error": {"Code": "404", "Message": "Not Found"}}, operation)


class FakeS3:
    """Answers the handful of S3 calls the checks make from an in-memory bucket map."""

    def __init__(self, buckets: dict[str, dict[str, dict]]) -> None:
        self.buckets = buckets

    def head_object(self, Bucket: str, Key: str) -> dict:
        try:
            return self.buckets[Bucket][Key]
        except KeyError:
            raise not_found("HeadObject") from None

    def head_bucket(self, Bucket: str) -> dict:
        if Bucket not in self.buckets:
            raise not_found("HeadBucket")
        return {}

    def list_buckets(self) -> dict:
        return {"Buckets": [{"Name": name} for name in self.buckets]}

    def get_paginator(self, operation: str) -> MagicMock:
        paginator = MagicMock()
        paginator.paginate.side_effect = lambda Bucket: [
            {"Contents": [{"Key": key, "Size": head["ContentLength"]} for key, head in self.buckets[Bucket].items()]}
        ]
        return paginator


def stored(size: int, content_type: str = "application/octet-stream", age: timedelta = timedelta(0)) -> dict:
    return {"ContentLength": size, "ContentType": content_type, "LastModified": datetime.now(timezone.utc) - age}


def make_test(verify_state: dict) -> MinioTest:
    test = MinioTest.from_config({"name": "t", "kind": "minio", "verify_state": verify_state}, DecodeContext())
    storage = MinioUnit("storage", access_key="key", secret_key="secret")
    storage.host_port = 19000
    test.initialize(TestSuite(name="s", units=[storage], tests=[test], target_name="storage"))
    return test


def run(test: MinioTest, s3: FakeS3, fixtures: dict | None = None):
    with patch("harborqa.adapters.minio_unit.boto3.client", return_value=s3) as make_client:
        result = test.run(TestRunOptions(fixtures=fixtures or {}))
    return result, make_client


class TestParsing:
    @pytest.mark.parametrize(("raw", "size"), [(512, 512), ("512", 512), ("10KB", 10240), ("2mb", 2 * 1024**2), ("1G", 1024**3)])
    def test_sizes(self, raw, size) -> None:
        assert parse_size(raw) == size

    def test_bad_size(self) -> None:
        with pytest.raises(ValueError, match="invalid size"):
            parse_size("ten megs")

    @pytest.mark.parametrize(
        ("raw", "actual", "holds"),
        [(3, 3, True), ("<= 5", 5, True), ("≤5", 6, False), (">=2", 1, False), ("≥ 2", 2, True), ("< 1", 0, True), ("> 1", 1, False)],
    )
    def test_count_constraints(self, raw, actual, holds) -> None:
        assert CountConstraint.parse(raw).holds(actual) is holds

    def test_bad_count_constraint(self) -> None:
        with pytest.raises(ValueError, match="invalid count constraint"):
            CountConstraint.parse("about 3")

    def test_state_shapes(self) -> None:
        state = StateVerification.parse(
            {
                "files_exist": ["uploads/a.png"],
                "required": {
                    "buckets": {"uploads": [{"path": "uploads/b.png", "min_size": "1KB"}, "c.png"]},
                    "files": [{"path": "thumbs/b.png", "max_age": "1h"}],
                },
                "forbidden": {"buckets": {"uploads": ["*.tmp"]}, "files": ["uploads/secret.txt"]},
                "constraints": [{"bucket": "uploads", "file_count": "<= 3"}, {"total_buckets": 2}],
            }
        )

        assert state.required_buckets == ["uploads"]
        assert [(o.bucket, o.key) for o in state.required_objects] == [
            ("uploads", "b.png"),
            ("uploads", "c.png"),
            ("thumbs", "b.png"),
        ]
        assert state.required_objects[0].min_size == 1024
        assert state.required_objects[2].max_age == 3600
        assert state.constraints[0].file_count == CountConstraint("<=", 3)

    @pytest.mark.parametrize(
        "raw",
        [None, {"files_exist": ["no-slash"]}, {"constraints": [{"file_count": 1}]}, {"required": {"files": [{"path": "a/b", "colour": 1}]}}],
    )
    def test_rejected_states(self, raw) -> None:
        with pytest.raises(ValueError):
            StateVerification.parse(raw)


class TestRun:
    def test_passing_state(self) -> None:
        s3 = FakeS3(
            {
                "uploads": {"42.png": stored(2048, "image/png"), "43.png": stored(100, "image/png")},
                "thumbs": {},
            }
        )
        test = make_test(
            {
                "files_exist": ["uploads/{{ id }}.png"],
                "bucket_counts": {"uploads": 2, "thumbs": 0},
                "required": {
                    "buckets": {"uploads": [{"path": "{{ id }}.png", "min_size": "1KB", "content_type": "image/png"}]}
                },
                "forbidden": {"buckets": {"uploads": ["*.tmp"]}, "files": ["uploads/secret.txt"]},
                "constraints": [{"bucket": "uploads", "file_count": "<= 2", "max_total_size": "4KB"}, {"total_buckets": 2}],
            }
        )

        result, make_client = run(test, s3, {"id": "42"})

        assert result.passed, result.message
        assert make_client.call_args.kwargs["endpoint_url"] == "http://127.0.0.1:19000"
        assert make_client.call_args.kwargs["aws_access_key_id"] == "key"

    def test_every_violation_is_listed(self) -> None:
        s3 = FakeS3({"uploads": {"a.tmp": stored(10), "b.bin": stored(5000, age=timedelta(hours=2))}})
        test = make_test(
            {
                "files_exist": ["uploads/missing.bin"],
                "bucket_counts": {"uploads": 1},
                "required": {
                    "buckets": {"archive": []},
                    "files": [{"path": "uploads/b.bin", "max_size": "1KB", "max_age": "1h", "content_type": "text/plain"}],
                },
                "forbidden": {"buckets": {"uploads": ["*.tmp"]}, "files": ["uploads/b.bin"]},
                "constraints": [{"bucket": "uploads", "file_count": "> 5", "min_total_size": "1MB"}],
            }
        )

        result, _ = run(test, s3)

        assert not result.passed
        assert result.message.splitlines() == [
            "State verification failed:",
            "file uploads/missing.bin does not exist",
            "bucket uploads has 2 files, expected 1",
            "required bucket archive does not exist",
            "file uploads/b.bin size 5000 exceeds maximum 1024",
            "file uploads/b.bin is older than maximum age 3600s",
            "file uploads/b.bin has content type application/octet-stream, expected text/plain",
            "forbidden file pattern *.tmp found in bucket uploads: a.tmp",
            "forbidden file uploads/b.bin exists",
            "files in bucket uploads count is 2, expected > 5",
            "bucket uploads total size 5010 is less than minimum 1048576",
        ]

    def test_connection_errors_are_failures(self) -> None:
        s3 = MagicMock()
        s3.head_object.side_effect = EndpointConnectionError(endpoint_url="http://127.0.0.1:19000")
        test = make_test({"files_exist": ["uploads/a.png"]})

        result, _ = run(test, s3)

        assert not result.passed
        assert result.message.startswith("Object storage request failed")

    def test_target_must_be_object_storage(self) -> None:
        test = MinioTest.from_config({"name": "t", "verify_state": {"files_exist": ["a/b"]}}, DecodeContext())

        with pytest.raises(TargetResolutionError, match="no object storage credentials"):
            test.initialize(TestSuite(name="s", units=[FakeUnit("api")], tests=[test], target_name="api"))
