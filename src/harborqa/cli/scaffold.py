"""Starter suite templates for ``harborqa scaffold-test``."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any

import yaml

from harborqa.config.loader import SUITE_FILENAMES, TESTS_DIR
from harborqa.config.schema import NAME_PATTERN
from harborqa.core.suite import SUITE_KIND_V1
from harborqa.errors.base import ConfigurationError

UNIT_TEMPLATES: dict[str, dict[str, Any]] = {
    "http": {
        "name": "api",
        "kind": "http",
        "dockerfile": "Dockerfile",
        "app_port": 8080,
        "healthcheck": "/health",
    },
    "postgres": {
        "name": "db",
        "kind": "postgres",
        "database": "app",
        "user": "app",
        "password": "app",
    },
    "httpmock": {
        "name": "payments",
        "kind": "httpmock",
        "routes": [
            {
                "path": "/charges",
                "method": "POST",
                "response": {"status": 201, "body": {"id": "ch_123", "status": "succeeded"}},
            }
        ],
    },
    "mongo": {"name": "mongo", "kind": "mongo", "database": "app"},
    "minio": {"name": "storage", "kind": "minio", "buckets": ["uploads"]},
}

TEST_TEMPLATES: dict[str, dict[str, Any]] = {
    "http": {
        "name": "health responds",
        "kind": "http",
        "request": {"method": "GET", "path": "/health"},
        "expect": {"status_code": 200},
    },
    "httpmock": {
        "name": "mock charges",
        "kind": "http",
        "target": "payments",
        "request": {"method": "POST", "path": "/charges", "body": {"amount": 100}},
        "expect": {"status_code": 201, "body_asserts": {"status": "succeeded"}},
    },
    "postgres": {
        "name": "database answers",
        "kind": "postgres",
        "target": "db",
        "query": "SELECT 1 AS ok",
        "expect": {"row_count": 1},
    },
    "mongo": {
        "name": "orders start empty",
        "kind": "mongo",
        "target": "mongo",
        "collection": "orders",
        "expect": {"no_documents": True},
    },
    "minio": {
        "name": "uploads bucket exists",
        "kind": "minio",
        "target": "storage",
        "verify_state": {"required": {"buckets": {"uploads": []}}},
    },
}

HTTP_ENV = {
    "postgres": "DATABASE_URL={{ db.local_database_url }}",
    "httpmock": "PAYMENTS_URL={{ payments.local_endpoint }}",
    "mongo": "MONGO_URL={{ mongo.local_dsn }}",
    "minio": "S3_ENDPOINT={{ storage.local_url }}",
}

DEFAULT_TARGETS = {"http": "api", "httpmock": "payments", "postgres": "db", "mongo": "mongo", "minio": "storage"}


def parse_templates(value: str) -> list[str]:
    """Split ``http,postgres`` into template names, rejecting unknown ones."""
    names = [part.strip() for part in value.split(",") if part.strip()]
    if not names:
        raise ConfigurationError("at least one template is required")
    unknown = [name for name in names if name not in UNIT_TEMPLATES]
    if unknown:
        raise ConfigurationError(
            f"unknown template(s): {', '.join(unknown)}",
            suggestions=[f"Available templates: {', '.join(sorted(UNIT_TEMPLATES))}"],
        )
    return list(dict.fromkeys(names))


def check_name(name: str) -> str:
    if not re.match(NAME_PATTERN, name):
        raise ConfigurationError(
            f"invalid suite name '{name}'",
            suggestions=["Use letters, digits, '.', '_' and '-', starting with a letter or digit"],
        )
    return name


def build_suite(name: str, templates: list[str]) -> dict[str, Any]:
    """Suite document for ``templates``, as loaded from YAML."""
    target = next(DEFAULT_TARGETS[t] for t in DEFAULT_TARGETS if t in templates)
    units = []
    for template in templates:
        unit = dict(UNIT_TEMPLATES[template])
        if template == "http":
            env = [line for t, line in HTTP_ENV.items() if t in templates]
            if env:
                unit["env"] = env
        units.append(unit)

    return {
        "kind": SUITE_KIND_V1,
        "name": name,
        "target": target,
        "units": units,
        "tests": [TEST_TEMPLATES[t] for t in templates if t in TEST_TEMPLATES],
    }


def render_suite(name: str, templates: list[str]) -> str:
    return yaml.safe_dump(build_suite(name, templates), sort_keys=False, default_flow_style=False)


def scaffold_suite(base_dir: str | Path, name: str, templates: list[str]) -> Path:
    """Write ``tests/<name>/suite.yml``.

    Raises:
        ConfigurationError: the name is invalid or the suite already exists.
    """
    suite_dir = Path(base_dir) / TESTS_DIR / check_name(name)
    existing = [suite_dir / filename for filename in SUITE_FILENAMES if (suite_dir / filename).exists()]
    if existing:
        raise ConfigurationError(
            f"suite already exists: {existing[0]}",
            suggestions=["Choose another name or delete the existing suite first"],
        )

    suite_dir.mkdir(parents=True, exist_ok=True)
    path = suite_dir / SUITE_FILENAMES[0]
    path.write_text(render_suite(name, templates), encoding="utf-8")
    return path
