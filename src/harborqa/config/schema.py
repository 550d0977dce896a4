"""Schema for suite documents.

Only the fields the core decodes itself are described in detail; each
unit and test mapping is handed to its kind's constructor as-is.
"""

from __future__ import annotations

from typing import Any

SUITE_KINDS = ["e2e_test:v1"]

NAME_PATTERN = r"^[A-Za-z0-9][A-Za-z0-9_.-]*$"

_NAME: dict[str, Any] = {"type": "string", "minLength": 1, "pattern": NAME_PATTERN}

_FIXTURE: dict[str, Any] = {
    "type": "object",
    "required": ["name"],
    "additionalProperties": False,
    "properties": {
        "name": {"type": "string", "minLength": 1, "pattern": r"^[A-Za-z0-9_]+$"},
        "value": {"type": ["string", "integer", "number", "boolean"]},
        "file": {"type": "string", "minLength": 1},
    },
}

_UNIT: dict[str, Any] = {
    "type": "object",
    "required": ["name", "kind"],
    "properties": {
        "name": _NAME,
        "kind": {"type": "string", "minLength": 1},
    },
}

_TEST: dict[str, Any] = {
    "type": "object",
    "required": ["name", "kind"],
    "properties": {
        "name": {"type": "string", "minLength": 1},
        "kind": {"type": "string", "minLength": 1},
        "target": {"type": "string", "minLength": 1},
    },
}

SUITE_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["kind", "name", "units"],
    "additionalProperties": False,
    "properties": {
        "kind": {"type": "string", "enum": SUITE_KINDS},
        "name": _NAME,
        "target": {"type": "string", "minLength": 1},
        "fixtures": {"type": "array", "items": _FIXTURE},
        "before_all": {"type": "string"},
        "after_all": {"type": "string"},
        "before_each": {"type": "string"},
        "after_each": {"type": "string"},
        "units": {"type": "array", "minItems": 1, "items": _UNIT},
        "tests": {"type": "array", "items": _TEST},
    },
}
