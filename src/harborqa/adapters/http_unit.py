"""``http`` unit: an application container serving HTTP."""

from __future__ import annotations

import contextlib
import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any

from harborqa.adapters.container import LOCAL_HOST, ContainerUnit, load_env_file, parse_command, parse_env, startup_timeout
from harborqa.core.cancellation import CancellationToken
from harborqa.core.events import EventType
from harborqa.core.registry import DecodeContext
from harborqa.core.unit import UnitStartOptions, slugify
from harborqa.infra.base import LABEL_MANAGED, LABEL_SESSION, LABEL_SUITE

logger = logging.getLogger(__name__)

KIND = "http"
DEFAULT_STARTUP_TIMEOUT = 5.0


class HTTPUnit(ContainerUnit):
    """Runs ``image`` (or builds ``dockerfile``) and waits for its healthcheck.

    Example suite entry::

        - name: app
          kind: http
          dockerfile: Dockerfile
          app_port: 8080
          healthcheck: /health
          env:
            - DATABASE_URL={{ db.local_dsn }}
    """

    kind = KIND
    default_startup_timeout = DEFAULT_STARTUP_TIMEOUT

    def __init__(
        self,
        name: str,
        app_port: int,
        image: str = "",
        dockerfile: str = "",
        command: list[str] | None = None,
        healthcheck: str = "",
        **kwargs: Any,
    ) -> None:
        super().__init__(name, image=image, command=command, **kwargs)
        self.app_port = app_port
        self.container_port = app_port
        self.dockerfile = dockerfile
        self.healthcheck = healthcheck

    @classmethod
    def from_config(cls, config: dict[str, Any], context: DecodeContext) -> HTTPUnit:
        name = config["name"]
        image = config.get("image") or ""
        dockerfile = config.get("dockerfile") or ""
        if not image and not dockerfile:
            raise ValueError("requires 'image' or 'dockerfile'")
        if image and dockerfile:
            raise ValueError("requires 'image' or 'dockerfile', not both")

        app_port = config.get("app_port")
        if not isinstance(app_port, int) or isinstance(app_port, bool) or app_port <= 0:
            raise ValueError("requires 'app_port' to be a positive integer")

        healthcheck = config.get("healthcheck") or ""
        if healthcheck and not healthcheck.startswith("/"):
            healthcheck = f"/{healthcheck}"

        env: dict[str, str] = {}
        if config.get("env_file"):
            env.update(load_env_file(config["env_file"], context.working_dir, name))
        env.update(parse_env(config.get("env"), name))

        return cls(
            name,
            app_port=app_port,
            image=image,
            dockerfile=dockerfile,
            command=parse_command(config.get("command"), name),
            healthcheck=healthcheck,
            startup_timeout=startup_timeout(config, context, DEFAULT_STARTUP_TIMEOUT),
            env=env,
        )

    def _ensure_image(self, options: UnitStartOptions) -> str:
        if not self.dockerfile:
            return super()._ensure_image(options)

        tag = f"{options.name_prefix}{slugify(options.suite or 'suite')}-{slugify(self.name)}:{options.session or 'latest'}"
        dockerfile = Path(self.dockerfile)
        if not dockerfile.is_absolute():
            dockerfile = options.working_dir / dockerfile
        labels = {key: value for key, value in options.labels.items() if key in (LABEL_MANAGED, LABEL_SUITE, LABEL_SESSION)}

        self._emit(EventType.CONTAINER_STARTING, f"Building image {tag} for unit {self.name}")
        semaphore = options.build_semaphore or contextlib.nullcontext()
        with semaphore:
            options.token.raise_if_cancelled()
            self.image = options.runtime.build_image(
                str(options.working_dir.resolve()),
                tag,
                dockerfile=str(dockerfile),
                labels=labels,
                timeout=options.build_timeout,
            )
        return self.image

    def _wait_for_ready(self, token: CancellationToken) -> None:
        if self.healthcheck:
            self.poll(token, lambda: self.http_ready(self.healthcheck))
        else:
            self.poll(token, self.tcp_ready)

    def variables(self) -> dict[str, Callable[[], str]]:
        return {
            "host": lambda: LOCAL_HOST,
            "port": lambda: str(self.host_port),
            "endpoint": self.external_endpoint,
            "local_host": lambda: self.name,
            "local_port": lambda: str(self.app_port),
            "local_endpoint": self.local_endpoint,
        }

    def external_endpoint(self) -> str:
        return f"http://{LOCAL_HOST}:{self.host_port}"

    def local_endpoint(self) -> str:
        return f"http://{self.name}:{self.app_port}"
