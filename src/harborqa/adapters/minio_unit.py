"""``minio`` unit: S3-compatible object storage."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from harborqa.adapters.container import LOCAL_HOST, ContainerUnit, load_env_file, parse_command, parse_env, startup_timeout
from harborqa.core.cancellation import CancellationToken
from harborqa.core.registry import DecodeContext
from harborqa.errors.base import SetupError

logger = logging.getLogger(__name__)

KIND = "minio"
DEFAULT_IMAGE = "minio/minio:latest"
DEFAULT_PORT = 9000
DEFAULT_CONSOLE_PORT = 9001
DEFAULT_ACCESS_KEY = "minioadmin"
DEFAULT_SECRET_KEY = "minioadmin"
DEFAULT_STARTUP_TIMEOUT = 10.0
REGION = "us-east-1"
CLIENT_TIMEOUT = 5


def s3_client(endpoint_url: str, access_key: str, secret_key: str) -> Any:
    """A boto3 S3 client for a MinIO endpoint."""
    config = Config(
        connect_timeout=CLIENT_TIMEOUT,
        read_timeout=CLIENT_TIMEOUT,
        signature_version="s3v4",
        retries={"max_attempts": 1},
        s3={"addressing_style": "path"},
    )
    return boto3.client(
        "s3",
        endpoint_url=endpoint_url,
        region_name=REGION,
        aws_access_key_id=access_key,
        aws_secret_access_key=secret_key,
        config=config,
    )


class MinioUnit(ContainerUnit):
    """A MinIO server with ``buckets`` created once it answers.

    Example suite entry::

        - name: storage
          kind: minio
          buckets: [uploads, thumbnails]
    """

    kind = KIND
    default_startup_timeout = DEFAULT_STARTUP_TIMEOUT

    def __init__(
        self,
        name: str,
        image: str = DEFAULT_IMAGE,
        app_port: int = DEFAULT_PORT,
        console_port: int = DEFAULT_CONSOLE_PORT,
        access_key: str = DEFAULT_ACCESS_KEY,
        secret_key: str = DEFAULT_SECRET_KEY,
        buckets: list[str] | None = None,
        command: list[str] | None = None,
        **kwargs: Any,
    ) -> None:
        if command is None:
            command = ["server", "/data", "--address", f":{app_port}", "--console-address", f":{console_port}"]
        super().__init__(name, image=image, command=command, **kwargs)
        self.app_port = app_port
        self.container_port = app_port
        self.console_port = console_port
        self.console_host_port: int | None = None
        self.access_key = access_key
        self.secret_key = secret_key
        self.buckets = buckets or []

    @classmethod
    def from_config(cls, config: dict[str, Any], context: DecodeContext) -> MinioUnit:
        name = config["name"]
        buckets = config.get("buckets") or []
        if not isinstance(buckets, list) or not all(isinstance(bucket, str) and bucket for bucket in buckets):
            raise ValueError("'buckets' must be a list of bucket names")

        env: dict[str, str] = {}
        if config.get("env_file"):
            env.update(load_env_file(config["env_file"], context.working_dir, name))
        env.update(parse_env(config.get("env"), name))

        return cls(
            name,
            image=config.get("image") or DEFAULT_IMAGE,
            app_port=int(config.get("app_port") or DEFAULT_PORT),
            console_port=int(config.get("console_port") or DEFAULT_CONSOLE_PORT),
            access_key=str(config.get("access_key") or DEFAULT_ACCESS_KEY),
            secret_key=str(config.get("secret_key") or DEFAULT_SECRET_KEY),
            buckets=list(dict.fromkeys(buckets)),
            command=parse_command(config.get("cmd") or config.get("command"), name),
            startup_timeout=startup_timeout(config, context, DEFAULT_STARTUP_TIMEOUT),
            env=env,
        )

    def effective_env(self) -> dict[str, str]:
        env = {"MINIO_ROOT_USER": self.access_key, "MINIO_ROOT_PASSWORD": self.secret_key}
        env.update(super().effective_env())
        return env

    def _port_bindings(self) -> dict[int, int]:
        bindings = super()._port_bindings()
        self.console_host_port = self.allocate_port()
        bindings[self.console_port] = self.console_host_port
        return bindings

    def client(self) -> Any:
        return s3_client(self.external_endpoint(), self.access_key, self.secret_key)

    def _is_ready(self) -> bool:
        self.check_running()
        try:
            self.client().list_buckets()
        except (BotoCoreError, ClientError) as e:
            logger.debug(f"MinIO {self.name} not ready: {e}")
            return False
        return True

    def _wait_for_ready(self, token: CancellationToken) -> None:
        self.poll(token, self._is_ready)
        if self.buckets:
            self.create_buckets()

    def create_buckets(self) -> None:
        client = self.client()
        for bucket in self.buckets:
            try:
                client.create_bucket(Bucket=bucket)
            except ClientError as e:
                if e.response.get("Error", {}).get("Code") == "BucketAlreadyOwnedByYou":
                    continue
                raise SetupError(
                    f"cannot create bucket '{bucket}': {e}",
                    context=self._context("create_buckets"),
                    cause=e,
                    recoverable=False,
                ) from e
            logger.info(f"Created bucket {bucket} on {self.name}")

    def variables(self) -> dict[str, Callable[[], str]]:
        return {
            "host": lambda: LOCAL_HOST,
            "port": lambda: str(self.host_port),
            "endpoint": lambda: f"{LOCAL_HOST}:{self.host_port}",
            "local_endpoint": lambda: f"{self.name}:{self.app_port}",
            "url": self.external_endpoint,
            "local_url": self.local_endpoint,
            "access_key": lambda: self.access_key,
            "secret_key": lambda: self.secret_key,
            "console_port": lambda: str(self.console_host_port),
            "console_endpoint": lambda: f"{LOCAL_HOST}:{self.console_host_port}",
        }

    def external_endpoint(self) -> str:
        return f"http://{LOCAL_HOST}:{self.host_port}"

    def local_endpoint(self) -> str:
        return f"http://{self.name}:{self.app_port}"
