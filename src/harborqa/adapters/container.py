"""Shared plumbing for units backed by a single container."""

from __future__ import annotations

import logging
import shlex
import socket
from pathlib import Path
from typing import Any

import httpx
from dotenv import dotenv_values

from harborqa.cleanup.targets import ContainerTarget
from harborqa.config.durations import parse_duration
from harborqa.core.cancellation import CancellationToken
from harborqa.core.events import EventType
from harborqa.core.registry import DecodeContext
from harborqa.core.unit import Unit, UnitStartOptions
from harborqa.errors.base import ConfigurationError, SetupError
from harborqa.infra.base import LABEL_UNIT, ContainerSpec

logger = logging.getLogger(__name__)

LOCAL_HOST = "127.0.0.1"
CHECK_TIMEOUT = 2.0
LOG_TAIL = 20


def env_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def parse_env(raw: Any, unit: str) -> dict[str, str]:
    """Accept ``["KEY=VALUE", ...]`` or ``{KEY: VALUE}``."""
    if raw is None:
        return {}
    if isinstance(raw, dict):
        return {str(key): env_value(value) for key, value in raw.items()}
    if isinstance(raw, list):
        env = {}
        for item in raw:
            if not isinstance(item, str) or "=" not in item:
                raise ValueError(f"env of unit '{unit}' must be KEY=VALUE strings, got {item!r}")
            key, value = item.split("=", 1)
            env[key.strip()] = value.strip()
        return env
    raise ValueError(f"env of unit '{unit}' must be a list or a mapping")


def load_env_file(path: str, working_dir: Path, unit: str) -> dict[str, str]:
    env_path = Path(path)
    if not env_path.is_absolute():
        env_path = working_dir / env_path
    if not env_path.is_file():
        raise ConfigurationError(f"env_file {env_path} of unit '{unit}' does not exist")
    return {key: value or "" for key, value in dotenv_values(env_path).items()}


def parse_command(raw: Any, unit: str) -> list[str] | None:
    if raw is None or raw == "" or raw == []:
        return None
    if isinstance(raw, str):
        return shlex.split(raw)
    if isinstance(raw, list) and all(isinstance(part, (str, int, float)) for part in raw):
        return [str(part) for part in raw]
    raise ValueError(f"command of unit '{unit}' must be a string or a list of strings")


def startup_timeout(config: dict[str, Any], context: DecodeContext, default: float) -> float:
    """Unit setting first, then the process-wide override, then the kind default."""
    value = parse_duration(config.get("startup_timeout"))
    if value:
        return value
    if context.startup_timeout:
        return context.startup_timeout
    return default


class ContainerUnit(Unit):
    """A unit that runs one container on the suite network.

    Subclasses describe the container through ``image``, ``container_port``
    and ``command`` and implement the readiness check.
    """

    container_port: int = 0

    def __init__(self, name: str, image: str = "", command: list[str] | None = None, **kwargs: Any) -> None:
        super().__init__(name, **kwargs)
        self.image = image
        self.command = command
        self.container_id: str | None = None
        self.host_port: int | None = None

    def _ensure_image(self, options: UnitStartOptions) -> str:
        if not options.runtime.image_exists(self.image):
            self._emit(EventType.CONTAINER_PULLING, f"Pulling image {self.image}")
            options.runtime.pull_image(self.image, timeout=options.build_timeout)
        return self.image

    def _volumes(self, options: UnitStartOptions) -> list[tuple[str, str, str]]:
        return []

    def _port_bindings(self) -> dict[int, int]:
        """Container port to host port. The first binding is the unit's main port."""
        self.host_port = self.allocate_port()
        return {self.container_port: self.host_port}

    def _run_container(self, options: UnitStartOptions, image: str) -> str:
        spec = ContainerSpec(
            name=self.container_name(),
            image=image,
            network=options.network,
            aliases=[self.name],
            env=self.effective_env(),
            ports=self._port_bindings(),
            command=self.command,
            labels={**options.labels, LABEL_UNIT: self.name},
            volumes=self._volumes(options),
        )
        self.container_id = options.runtime.run_container(spec)
        self.track(
            ContainerTarget(
                options.runtime,
                self.container_id,
                name=spec.name,
                suite=options.suite or None,
            )
        )
        logger.info(f"Unit {self.name} running as {spec.name} on {LOCAL_HOST}:{self.host_port}")
        return self.container_id

    def _start(self, options: UnitStartOptions) -> None:
        image = self._ensure_image(options)
        options.token.raise_if_cancelled()
        self._run_container(options, image)

    def _stop(self) -> None:
        self.container_id = None

    def check_running(self) -> None:
        """Fail fast if the container exited instead of waiting out the timeout."""
        assert self.options is not None and self.container_id is not None
        state = self.options.runtime.container_state(self.container_id)
        if state.running:
            return
        logs = self.options.runtime.container_logs(self.container_id, tail=LOG_TAIL)
        raise SetupError(
            f"container of unit '{self.name}' is {state.status} (exit code {state.exit_code})",
            context=self._context("wait_for_ready"),
            logs=logs.strip(),
        )

    def tcp_ready(self) -> bool:
        self.check_running()
        try:
            with socket.create_connection((LOCAL_HOST, self.host_port), timeout=CHECK_TIMEOUT):
                return True
        except OSError:
            return False

    def http_ready(self, path: str) -> bool:
        self.check_running()
        url = f"{self.external_endpoint()}{path}"
        try:
            response = httpx.get(url, timeout=CHECK_TIMEOUT)
        except httpx.HTTPError as e:
            logger.debug(f"Healthcheck {url} failed: {e}")
            return False
        return response.is_success

    def _wait_for_ready(self, token: CancellationToken) -> None:
        self.poll(token, self.tcp_ready)
