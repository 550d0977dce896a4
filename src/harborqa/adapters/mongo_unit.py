"""``mongo`` unit."""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any

from harborqa.adapters.container import LOCAL_HOST, ContainerUnit, load_env_file, parse_command, parse_env, startup_timeout
from harborqa.core.cancellation import CancellationToken
from harborqa.core.registry import DecodeContext
from harborqa.errors.base import SetupError

logger = logging.getLogger(__name__)

KIND = "mongo"
DEFAULT_IMAGE = "mongo:6"
DEFAULT_PORT = 27017
DEFAULT_DATABASE = "test"
DEFAULT_STARTUP_TIMEOUT = 30.0
MIGRATION_TIMEOUT = 120.0
DEFAULT_COMMAND = ["mongod", "--bind_ip_all", "--wiredTigerCacheSizeGB", "0.25"]


class MongoUnit(ContainerUnit):
    """A MongoDB server, optionally seeded with a ``mongosh`` script.

    Example suite entry::

        - name: mongo
          kind: mongo
          migrations: seed.js
    """

    kind = KIND
    default_startup_timeout = DEFAULT_STARTUP_TIMEOUT

    def __init__(
        self,
        name: str,
        image: str = DEFAULT_IMAGE,
        app_port: int = DEFAULT_PORT,
        database: str = DEFAULT_DATABASE,
        migrations: str | None = None,
        working_dir: Path | None = None,
        command: list[str] | None = None,
        **kwargs: Any,
    ) -> None:
        if command is None:
            command = list(DEFAULT_COMMAND)
            if app_port != DEFAULT_PORT:
                command += ["--port", str(app_port)]
        super().__init__(name, image=image, command=command, **kwargs)
        self.app_port = app_port
        self.container_port = app_port
        self.database = database
        self.migrations = migrations
        self.working_dir = working_dir or Path.cwd()

    @classmethod
    def from_config(cls, config: dict[str, Any], context: DecodeContext) -> MongoUnit:
        name = config["name"]
        env: dict[str, str] = {}
        if config.get("env_file"):
            env.update(load_env_file(config["env_file"], context.working_dir, name))
        env.update(parse_env(config.get("env"), name))

        return cls(
            name,
            image=config.get("image") or DEFAULT_IMAGE,
            app_port=int(config.get("app_port") or DEFAULT_PORT),
            database=str(config.get("database") or DEFAULT_DATABASE),
            migrations=config.get("migrations") or config.get("migration_file"),
            working_dir=context.working_dir,
            command=parse_command(config.get("cmd") or config.get("command"), name),
            startup_timeout=startup_timeout(config, context, DEFAULT_STARTUP_TIMEOUT),
            env=env,
        )

    def _mongosh(self, script: str, timeout: float) -> tuple[int, str]:
        assert self.options is not None and self.container_id is not None
        return self.options.runtime.exec_in_container(
            self.container_id,
            ["mongosh", "--quiet", "--port", str(self.app_port), self.database, "--eval", script],
            timeout=timeout,
        )

    def _is_ready(self) -> bool:
        self.check_running()
        returncode, _ = self._mongosh("db.adminCommand('ping')", timeout=5)
        return returncode == 0

    def _wait_for_ready(self, token: CancellationToken) -> None:
        self.poll(token, self._is_ready)
        if self.migrations:
            self.run_migrations()

    def migration_file(self) -> Path:
        path = Path(self.migrations or "")
        if not path.is_absolute():
            path = self.working_dir / path
        if not path.is_file():
            raise SetupError(f"migration file does not exist: {path}", context=self._context("migrate"), recoverable=False)
        return path

    def run_migrations(self) -> None:
        path = self.migration_file()
        logger.info(f"Running MongoDB migrations from {path.name} on {self.name}")
        returncode, output = self._mongosh(path.read_text(), timeout=MIGRATION_TIMEOUT)
        if returncode != 0:
            raise SetupError(
                f"migration {path.name} failed with exit code {returncode}: {output.strip()}",
                context=self._context("migrate"),
                recoverable=False,
            )
        if output.strip():
            logger.debug(f"{self.name} migration output: {output.strip()}")

    def _dsn(self, host: str, port: int | None) -> str:
        return f"mongodb://{host}:{port}/{self.database}"

    def variables(self) -> dict[str, Callable[[], str]]:
        return {
            "host": lambda: LOCAL_HOST,
            "port": lambda: str(self.host_port),
            "database": lambda: self.database,
            "dsn": self.external_endpoint,
            "local_dsn": self.local_endpoint,
        }

    def external_endpoint(self) -> str:
        return self._dsn(LOCAL_HOST, self.host_port)

    def local_endpoint(self) -> str:
        return self._dsn(self.name, self.app_port)
