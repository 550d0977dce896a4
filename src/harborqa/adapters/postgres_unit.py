"""``postgres`` unit."""

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

KIND = "postgres"
DEFAULT_IMAGE = "postgres:15-alpine"
DEFAULT_PORT = 5432
DEFAULT_DATABASE = "testdb"
DEFAULT_USER = "testuser"
DEFAULT_PASSWORD = "testpass"
DEFAULT_STARTUP_TIMEOUT = 30.0
MIGRATION_TIMEOUT = 120.0


class PostgresUnit(ContainerUnit):
    kind = KIND
    default_startup_timeout = DEFAULT_STARTUP_TIMEOUT

    def __init__(
        self,
        name: str,
        image: str = DEFAULT_IMAGE,
        app_port: int = DEFAULT_PORT,
        database: str = DEFAULT_DATABASE,
        user: str = DEFAULT_USER,
        password: str = DEFAULT_PASSWORD,
        migrations: str | None = None,
        working_dir: Path | None = None,
        command: list[str] | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(name, image=image, command=command, **kwargs)
        self.app_port = app_port
        self.container_port = app_port
        self.database = database
        self.user = user
        self.password = password
        self.migrations = migrations
        self.working_dir = working_dir or Path.cwd()

    @classmethod
    def from_config(cls, config: dict[str, Any], context: DecodeContext) -> PostgresUnit:
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
            user=str(config.get("user") or DEFAULT_USER),
            password=str(config.get("password") or DEFAULT_PASSWORD),
            migrations=config.get("migrations"),
            working_dir=context.working_dir,
            command=parse_command(config.get("cmd") or config.get("command"), name),
            startup_timeout=startup_timeout(config, context, DEFAULT_STARTUP_TIMEOUT),
            env=env,
        )

    def effective_env(self) -> dict[str, str]:
        env = {
            "POSTGRES_DB": self.database,
            "POSTGRES_USER": self.user,
            "POSTGRES_PASSWORD": self.password,
        }
        if self.app_port != DEFAULT_PORT:
            env["PGPORT"] = str(self.app_port)
        env.update(super().effective_env())
        return env

    def _is_ready(self) -> bool:
        assert self.options is not None and self.container_id is not None
        self.check_running()
        # The init scripts run against a socket-only server, so check over TCP.
        returncode, _ = self.options.runtime.exec_in_container(
            self.container_id,
            ["pg_isready", "-h", "127.0.0.1", "-p", str(self.app_port), "-U", self.user, "-d", self.database],
            timeout=5,
        )
        return returncode == 0

    def _wait_for_ready(self, token: CancellationToken) -> None:
        self.poll(token, self._is_ready)
        if self.migrations:
            self.run_migrations()

    def migration_files(self) -> list[Path]:
        path = Path(self.migrations or "")
        if not path.is_absolute():
            path = self.working_dir / path
        if not path.exists():
            raise SetupError(f"migrations path does not exist: {path}", context=self._context("migrate"), recoverable=False)
        files = [path] if path.is_file() else sorted(path.glob("*.sql"))
        if not files:
            raise SetupError(f"no migration files found in {path}", context=self._context("migrate"), recoverable=False)
        return files

    def run_migrations(self) -> None:
        assert self.options is not None and self.container_id is not None
        for file in self.migration_files():
            logger.info(f"Applying migration {file.name} to {self.name}")
            returncode, output = self.options.runtime.exec_in_container(
                self.container_id,
                ["psql", "-v", "ON_ERROR_STOP=1", "-U", self.user, "-d", self.database, "-c", file.read_text()],
                timeout=MIGRATION_TIMEOUT,
            )
            if returncode != 0:
                raise SetupError(
                    f"migration {file.name} failed with exit code {returncode}: {output.strip()}",
                    context=self._context("migrate"),
                    recoverable=False,
                )

    def _dsn(self, host: str, port: int | None) -> str:
        return f"postgres://{self.user}:{self.password}@{host}:{port}/{self.database}?sslmode=disable"

    def variables(self) -> dict[str, Callable[[], str]]:
        return {
            "host": lambda: LOCAL_HOST,
            "port": lambda: str(self.host_port),
            "database": lambda: self.database,
            "user": lambda: self.user,
            "password": lambda: self.password,
            "dsn": self.external_endpoint,
            "database_url": self.external_endpoint,
            "local_dsn": self.local_endpoint,
            "local_database_url": self.local_endpoint,
        }

    def external_endpoint(self) -> str:
        return self._dsn(LOCAL_HOST, self.host_port)

    def local_endpoint(self) -> str:
        return self._dsn(self.name, self.app_port)
