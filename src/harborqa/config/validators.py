"""Structural validation of suite documents."""

from __future__ import annotations

import re
from typing import Any

from harborqa.config.schema import SUITE_SCHEMA

_TYPE_NAMES = {
    "object": "object",
    "array": "array",
    "string": "string",
    "integer": "integer",
    "number": "number",
    "boolean": "boolean",
}


def _python_type_name(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int):
        return "integer"
    if isinstance(value, float):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    if isinstance(value, dict):
        return "object"
    return type(value).__name__


def _matches_type(value: Any, type_name: str) -> bool:
    actual = _python_type_name(value)
    if type_name == "number":
        return actual in ("integer", "number")
    return actual == type_name


class SchemaValidator:
    """Validator for a JSON-schema subset.

    Supports type (single or list), required, properties,
    additionalProperties, items, minItems, enum, minLength and pattern.
    Issues are returned as ``{"path": [...], "message": ...}`` dicts.
    """

    def __init__(self, schema: dict[str, Any] | None = None) -> None:
        self.schema = schema or SUITE_SCHEMA

    def validate(self, document: Any) -> list[dict[str, Any]]:
        """Validate a document against the schema.

        Returns list of issues, empty if valid.
        """
        errors: list[dict[str, Any]] = []
        self._validate_object(document, self.schema, [], errors)
        return errors

    def _validate_object(
        self,
        value: Any,
        schema: dict[str, Any],
        path: list[str | int],
        errors: list[dict[str, Any]],
    ) -> None:
        expected = schema.get("type")
        if expected is not None:
            allowed = expected if isinstance(expected, list) else [expected]
            if not any(_matches_type(value, t) for t in allowed):
                errors.append(
                    {
                        "path": path,
                        "message": f"Expected {' or '.join(_TYPE_NAMES.get(t, t) for t in allowed)}, "
                        f"got {_python_type_name(value)}",
                    }
                )
                return

        if isinstance(value, dict):
            properties = schema.get("properties", {})

            for req in schema.get("required", []):
                if req not in value:
                    errors.append(
                        {
                            "path": path + [req],
                            "message": f"Required property '{req}' is missing",
                        }
                    )

            for key, val in value.items():
                if key in properties:
                    self._validate_object(val, properties[key], path + [key], errors)
                elif not schema.get("additionalProperties", True):
                    errors.append(
                        {
                            "path": path + [key],
                            "message": f"Unknown property '{key}'",
                            "hint": f"Allowed properties: {sorted(properties)}",
                        }
                    )

        elif isinstance(value, list):
            min_items = schema.get("minItems")
            if min_items is not None and len(value) < min_items:
                errors.append(
                    {
                        "path": path,
                        "message": f"Array must have at least {min_items} items, got {len(value)}",
                    }
                )

            items_schema = schema.get("items", {})
            for i, item in enumerate(value):
                self._validate_object(item, items_schema, path + [i], errors)

        elif isinstance(value, str):
            if "enum" in schema and value not in schema["enum"]:
                errors.append(
                    {
                        "path": path,
                        "message": f"Value '{value}' not in allowed values: {', '.join(schema['enum'])}",
                    }
                )

            min_length = schema.get("minLength")
            if min_length is not None and len(value) < min_length:
                errors.append({"path": path, "message": "Value must not be empty"})

            if "pattern" in schema and value and not re.search(schema["pattern"], value):
                errors.append(
                    {
                        "path": path,
                        "message": f"Value '{value}' does not match pattern: {schema['pattern']}",
                    }
                )
