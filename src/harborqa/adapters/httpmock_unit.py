"""``httpmock`` unit: canned HTTP responses served from a container."""

from __future__ import annotations

import json
import logging
import tempfile
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from harborqa.adapters.container import LOCAL_HOST, ContainerUnit, env_value, startup_timeout
from harborqa.cleanup.targets import FileTarget
from harborqa.config.durations import parse_duration
from harborqa.core.cancellation import CancellationToken
from harborqa.core.interpolation import interpolate
from harborqa.core.registry import DecodeContext
from harborqa.core.unit import UnitStartOptions

logger = logging.getLogger(__name__)

KIND = "httpmock"
IMAGE = "python:3.12-alpine"
MOCK_PORT = 8080
HEALTH_PATH = "/__harborqa/health"
SCRIPT_NAME = "mock_server.py"
MOUNT_DIR = "/srv/harborqa"
DEFAULT_STARTUP_TIMEOUT = 15.0

MOCK_SERVER_TEMPLATE = '''\
import json
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

ROUTES = json.loads({routes!r})
HEALTH_PATH = {health!r}


class Handler(BaseHTTPRequestHandler):
    def _serve(self):
        path = self.path.split("?", 1)[0]
        if path == HEALTH_PATH:
            self.send_response(200)
            self.send_header("Content-Length", "0")
            self.end_headers()
            return
        route = ROUTES.get(path, {{}}).get(self.command)
        if route is None:
            body = b"404 page not found\\n"
            self.send_response(404)
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            self.wfile.write(body)
            return
        if route["delay"]:
            time.sleep(route["delay"])
        body = route["body"].encode()
        self.send_response(route["status"])
        for name, value in route["headers"].items():
            self.send_header(name, value)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    do_GET = do_POST = do_PUT = do_PATCH = do_DELETE = do_OPTIONS = _serve

    def log_message(self, format, *args):
        pass


ThreadingHTTPServer(("0.0.0.0", {port}), Handler).serve_forever()
'''


@dataclass
class MockRoute:
    path: str
    method: str = "GET"
    status: int = 200
    body: Any = ""
    headers: dict[str, str] = field(default_factory=dict)
    delay: float = 0.0

    @classmethod
    def from_config(cls, raw: Mapping[str, Any]) -> MockRoute:
        if not isinstance(raw, Mapping) or not raw.get("path"):
            raise ValueError(f"every route needs a 'path', got {raw!r}")
        # Routes may nest the reply under ``response`` or put it inline.
        response = raw.get("response") or raw
        return cls(
            path=str(raw["path"]),
            method=str(raw.get("method") or "GET").upper(),
            status=int(response.get("status") or 200),
            body=response.get("body", ""),
            headers={str(k): env_value(v) for k, v in (response.get("headers") or {}).items()},
            delay=parse_duration(response.get("delay"), default=0.0),
        )


def _interpolate_value(value: Any, fixtures: Mapping[str, str]) -> Any:
    if isinstance(value, str):
        return interpolate(value, fixtures)
    if isinstance(value, dict):
        return {key: _interpolate_value(item, fixtures) for key, item in value.items()}
    if isinstance(value, list):
        return [_interpolate_value(item, fixtures) for item in value]
    return value


def render_routes(routes: list[MockRoute], fixtures: Mapping[str, str]) -> dict[str, dict[str, dict[str, Any]]]:
    """Routes as ``{path: {METHOD: reply}}`` with fixtures applied."""
    table: dict[str, dict[str, dict[str, Any]]] = {}
    for route in routes:
        headers = {interpolate(k, fixtures): interpolate(v, fixtures) for k, v in route.headers.items()}
        body = _interpolate_value(route.body, fixtures)
        if isinstance(body, (dict, list)):
            body = json.dumps(body)
            headers.setdefault("Content-Type", "application/json")
        elif body is None:
            body = ""
        table.setdefault(interpolate(route.path, fixtures), {})[route.method] = {
            "status": route.status,
            "body": str(body),
            "headers": headers,
            "delay": route.delay,
        }
    return table


def render_server_script(routes: list[MockRoute], fixtures: Mapping[str, str], port: int = MOCK_PORT) -> str:
    return MOCK_SERVER_TEMPLATE.format(
        routes=json.dumps(render_routes(routes, fixtures)),
        health=HEALTH_PATH,
        port=port,
    )


class HTTPMockUnit(ContainerUnit):
    """Serves ``routes`` from a throwaway Python container."""

    kind = KIND
    default_startup_timeout = DEFAULT_STARTUP_TIMEOUT
    container_port = MOCK_PORT

    def __init__(self, name: str, routes: list[MockRoute], **kwargs: Any) -> None:
        super().__init__(
            name,
            image=IMAGE,
            command=["python", f"{MOUNT_DIR}/{SCRIPT_NAME}"],
            **kwargs,
        )
        self.routes = routes
        self.script_dir: Path | None = None

    @classmethod
    def from_config(cls, config: dict[str, Any], context: DecodeContext) -> HTTPMockUnit:
        raw_routes = config.get("routes")
        if not isinstance(raw_routes, list) or not raw_routes:
            raise ValueError("requires a non-empty 'routes' list")
        return cls(
            config["name"],
            routes=[MockRoute.from_config(route) for route in raw_routes],
            startup_timeout=startup_timeout(config, context, DEFAULT_STARTUP_TIMEOUT),
        )

    def _start(self, options: UnitStartOptions) -> None:
        script_dir = Path(tempfile.mkdtemp(prefix=f"{options.name_prefix}mock-"))
        script_dir.chmod(0o755)
        self.track(FileTarget(script_dir, name=f"{self.name} mock script", suite=options.suite or None))
        (script_dir / SCRIPT_NAME).write_text(render_server_script(self.routes, options.fixtures))
        self.script_dir = script_dir
        super()._start(options)

    def _volumes(self, options: UnitStartOptions) -> list[tuple[str, str, str]]:
        assert self.script_dir is not None
        return [(str(self.script_dir), MOUNT_DIR, "ro")]

    def _wait_for_ready(self, token: CancellationToken) -> None:
        self.poll(token, lambda: self.http_ready(HEALTH_PATH))

    def _stop(self) -> None:
        super()._stop()
        self.script_dir = None

    def variables(self) -> dict[str, Callable[[], str]]:
        return {
            "host": lambda: LOCAL_HOST,
            "port": lambda: str(self.host_port),
            "endpoint": self.external_endpoint,
            "local_endpoint": self.local_endpoint,
        }

    def external_endpoint(self) -> str:
        return f"http://{LOCAL_HOST}:{self.host_port}"

    def local_endpoint(self) -> str:
        return f"http://{self.name}:{MOCK_PORT}"
