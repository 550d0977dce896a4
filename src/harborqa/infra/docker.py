"""Docker CLI backend for the container runtime protocol.

Talks to the daemon through the ``docker`` binary, so ``DOCKER_HOST`` and
``DOCKER_API_VERSION`` from the environment apply unchanged.
"""

from __future__ import annotations

import json as json_module
import logging
import os
import subprocess
import threading
from datetime import datetime, timezone
from typing import Any

from harborqa.errors.base import DockerError, DockerNotFoundError, ResourceNotFoundError
from harborqa.infra.base import ContainerInfo, ContainerSpec, ContainerState, ImageInfo, NetworkInfo

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60.0

_NOT_FOUND_MARKERS = ("no such", "not found")


def _parse_timestamp(value: str | None) -> datetime:
    """Parse docker timestamps into aware UTC datetimes.

    Handles inspect output ("2024-05-01T10:11:12.123456789Z") and ps output
    ("2024-05-01 10:11:12 +0200 CEST").
    """
    if not value:
        return datetime.now(timezone.utc)

    if "T" in value:
        text = value.replace("Z", "+00:00")
        head, sep, tail = text.partition(".")
        if sep:
            digits = ""
            rest = tail
            while rest and rest[0].isdigit():
                digits += rest[0]
                rest = rest[1:]
            text = f"{head}.{digits[:6].ljust(6, '0')}{rest}"
        try:
            return datetime.fromisoformat(text).astimezone(timezone.utc)
        except ValueError:
            logger.debug(f"Unparseable docker timestamp: {value}")
            return datetime.now(timezone.utc)

    parts = value.split()
    try:
        stamp = datetime.strptime(" ".join(parts[:3]), "%Y-%m-%d %H:%M:%S %z")
        return stamp.astimezone(timezone.utc)
    except (ValueError, IndexError):
        logger.debug(f"Unparseable docker timestamp: {value}")
        return datetime.now(timezone.utc)


def _parse_labels(raw: Any) -> dict[str, str]:
    if isinstance(raw, dict):
        return {str(k): str(v) for k, v in raw.items()}
    if not raw:
        return {}
    labels: dict[str, str] = {}
    for pair in str(raw).split(","):
        key, _, value = pair.partition("=")
        if key:
            labels[key.strip()] = value.strip()
    return labels


class DockerCLI:
    """Container runtime implemented over the docker command line."""

    def __init__(self, binary: str = "docker") -> None:
        self.binary = binary
        self.host = os.environ.get("DOCKER_HOST")
        self.api_version = os.environ.get("DOCKER_API_VERSION")

    def _run_command(
        self,
        *args: str,
        check: bool = True,
        timeout: float | None = DEFAULT_TIMEOUT,
    ) -> subprocess.CompletedProcess[str]:
        """Run a docker command.

        Raises:
            DockerNotFoundError: The docker binary is missing.
            ResourceNotFoundError: The daemon reports the object does not exist.
            DockerError: Any other non-zero exit when check=True, or a timeout.
        """
        cmd = [self.binary, *args]
        logger.debug(f"Running docker command: {' '.join(cmd)}")

        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                check=False,
                timeout=timeout,
            )
        except FileNotFoundError as e:
            raise DockerNotFoundError(
                "Docker command not found. Please install Docker.",
                command=cmd,
                cause=e,
            ) from e
        except subprocess.TimeoutExpired as e:
            raise DockerError(
                f"Docker command timed out after {timeout}s: {' '.join(args)}",
                command=cmd,
                cause=e,
            ) from e

        if check and result.returncode != 0:
            stderr = result.stderr or ""
            error_cls = DockerError
            if any(marker in stderr.lower() for marker in _NOT_FOUND_MARKERS):
                error_cls = ResourceNotFoundError
            raise error_cls(
                f"Docker command failed: {' '.join(args[:2])}",
                command=cmd,
                stderr=stderr,
            )

        return result

    def ping(self) -> None:
        try:
            self._run_command("version", "--format", "{{.Server.Version}}", timeout=10)
        except DockerNotFoundError:
            raise
        except DockerError as e:
            raise DockerNotFoundError(
                "Docker daemon is not reachable",
                command=e.command,
                stderr=e.stderr,
            ) from e

    # Networks

    def create_network(self, name: str, labels: dict[str, str] | None = None) -> str:
        args = ["network", "create"]
        for key, value in (labels or {}).items():
            args.extend(["--label", f"{key}={value}"])
        args.append(name)
        result = self._run_command(*args)
        network_id = result.stdout.strip()
        logger.info(f"Created network {name} ({network_id[:12]})")
        return network_id

    def remove_network(self, network: str) -> None:
        self._run_command("network", "rm", network)
        logger.info(f"Removed network {network}")

    def list_networks(self) -> list[NetworkInfo]:
        ids = self._run_command("network", "ls", "-q", "--no-trunc").stdout.split()
        if not ids:
            return []

        result = self._run_command("network", "inspect", *ids, check=False)
        try:
            payload = json_module.loads(result.stdout or "[]")
        except json_module.JSONDecodeError:
            logger.warning("Could not parse docker network inspect output")
            return []

        networks = []
        for data in payload:
            networks.append(
                NetworkInfo(
                    id=data.get("Id", ""),
                    name=data.get("Name", ""),
                    created_at=_parse_timestamp(data.get("Created")),
                    labels=_parse_labels(data.get("Labels")),
                    containers=list((data.get("Containers") or {}).keys()),
                    driver=data.get("Driver", ""),
                )
            )
        return networks

    # Images

    def pull_image(self, image: str, timeout: float | None = None) -> None:
        logger.info(f"Pulling image {image}")
        self._run_command("pull", image, timeout=timeout)

    def image_exists(self, image: str) -> bool:
        result = self._run_command("image", "inspect", image, check=False)
        return result.returncode == 0

    def build_image(
        self,
        context_dir: str,
        tag: str,
        dockerfile: str | None = None,
        labels: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> str:
        args = ["build", "-t", tag]
        if dockerfile:
            args.extend(["-f", dockerfile])
        for key, value in (labels or {}).items():
            args.extend(["--label", f"{key}={value}"])
        args.append(context_dir)

        logger.info(f"Building image {tag} from {context_dir}")
        self._run_command(*args, timeout=timeout)
        return tag

    def list_images(self, label: str | None = None) -> list[ImageInfo]:
        args = ["images", "-q", "--no-trunc"]
        if label:
            args.extend(["--filter", f"label={label}"])
        ids = sorted(set(self._run_command(*args).stdout.split()))
        if not ids:
            return []

        result = self._run_command("image", "inspect", *ids, check=False)
        try:
            payload = json_module.loads(result.stdout or "[]")
        except json_module.JSONDecodeError:
            logger.warning("Could not parse docker image inspect output")
            return []

        return [
            ImageInfo(
                id=data.get("Id", ""),
                tags=list(data.get("RepoTags") or []),
                created_at=_parse_timestamp(data.get("Created")),
                labels=_parse_labels((data.get("Config") or {}).get("Labels")),
            )
            for data in payload
        ]

    def remove_image(self, image: str) -> None:
        self._run_command("rmi", image)
        logger.info(f"Removed image {image}")

    # Containers

    def run_container(self, spec: ContainerSpec) -> str:
        args = ["run", "-d", "--name", spec.name]
        if spec.network:
            args.extend(["--network", spec.network])
            for alias in spec.aliases:
                args.extend(["--network-alias", alias])
        for key, value in spec.env.items():
            args.extend(["-e", f"{key}={value}"])
        for container_port, host_port in spec.ports.items():
            args.extend(["-p", f"127.0.0.1:{host_port}:{container_port}"])
        for key, value in spec.labels.items():
            args.extend(["--label", f"{key}={value}"])
        for host_path, container_path, mode in spec.volumes:
            args.extend(["-v", f"{host_path}:{container_path}:{mode}"])
        args.append(spec.image)
        if spec.command:
            args.extend(spec.command)

        result = self._run_command(*args, timeout=120)
        container_id = result.stdout.strip()
        logger.info(f"Started container {spec.name} ({container_id[:12]})")
        return container_id

    def container_state(self, container: str) -> ContainerState:
        result = self._run_command("inspect", "--format", "{{json .State}}", container)
        try:
            data = json_module.loads(result.stdout or "{}")
        except json_module.JSONDecodeError as e:
            raise DockerError(f"Could not parse state of {container}", cause=e) from e

        health = data.get("Health") or {}
        return ContainerState(
            running=bool(data.get("Running")),
            status=data.get("Status", "unknown"),
            exit_code=data.get("ExitCode"),
            health=health.get("Status"),
        )

    def container_logs(self, container: str, tail: int = 50) -> str:
        result = self._run_command("logs", "--tail", str(tail), container, check=False)
        return (result.stdout or "") + (result.stderr or "")

    def exec_in_container(
        self, container: str, command: list[str], timeout: float | None = None
    ) -> tuple[int, str]:
        result = self._run_command("exec", container, *command, check=False, timeout=timeout)
        return result.returncode, (result.stdout or "") + (result.stderr or "")

    def remove_container(self, container: str, force: bool = True) -> None:
        args = ["rm", "-v"]
        if force:
            args.append("-f")
        args.append(container)
        self._run_command(*args)
        logger.info(f"Removed container {container}")

    def list_containers(self) -> list[ContainerInfo]:
        result = self._run_command("ps", "-a", "--no-trunc", "--format", "{{json .}}")

        containers = []
        for line in result.stdout.strip().splitlines():
            if not line.strip():
                continue
            try:
                data = json_module.loads(line)
            except json_module.JSONDecodeError:
                logger.debug(f"Skipping unparseable docker ps line: {line}")
                continue
            containers.append(
                ContainerInfo(
                    id=data.get("ID", ""),
                    name=data.get("Names", "").split(",")[0],
                    image=data.get("Image", ""),
                    created_at=_parse_timestamp(data.get("CreatedAt")),
                    labels=_parse_labels(data.get("Labels")),
                    state=data.get("State", "").lower(),
                    networks=[n for n in data.get("Networks", "").split(",") if n],
                )
            )
        return containers


_runtime: DockerCLI | None = None
_runtime_lock = threading.Lock()


def get_runtime() -> DockerCLI:
    """Return the process-wide docker client."""
    global _runtime
    with _runtime_lock:
        if _runtime is None:
            _runtime = DockerCLI()
            if _runtime.host:
                logger.debug(f"Using docker host {_runtime.host}")
        return _runtime
