"""Body and header assertions for ``http`` tests.

Body paths are dotted, with ``[n]`` (or ``.n``) indexing arrays:
``data.items[0].name``. ``$`` addresses the whole body.

Example:
    >>> asserts = parse_body_asserts({"user.name": "alice", "items": {"length": 2}})
    >>> check_body(asserts, b'{"user": {"name": "alice"}, "items": [1, 2]}', {})
    []
"""

from __future__ import annotations

import json
import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from harborqa.core.interpolation import interpolate

ROOT_PATH = "$"
VALUE_TYPES = ("string", "int", "float", "bool", "array", "object")

_STRING_OPERATORS = ("equals", "not_equals", "contains", "not_contains", "matches", "not_matches")
_BODY_ALIASES = {">": "greater_than", "<": "less_than", "size": "length"}
_EXCLUSIVE_WITH_EQUALS = ("not_equals", "contains", "not_contains", "matches", "not_matches", "greater_than", "less_than")

_MISSING = object()
_INDEX = re.compile(r"\[(\d+)\]")


def stringify(value: Any) -> str:
    """Render a JSON value the way assertions compare it."""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    if isinstance(value, (dict, list)):
        return json.dumps(value, separators=(",", ":"))
    return str(value)


def resolve_path(data: Any, path: str) -> Any:
    """Return the value at ``path`` or ``_MISSING``."""
    if path in ("", ROOT_PATH):
        return data
    if path.startswith("$."):
        path = path[2:]

    current = data
    for part in _INDEX.sub(r".\1", path).split("."):
        if part == "":
            continue
        if isinstance(current, dict) and part in current:
            current = current[part]
        elif isinstance(current, list) and part.isdigit() and int(part) < len(current):
            current = current[int(part)]
        else:
            return _MISSING
    return current


def _check_conflicts(operators: dict[str, Any], where: str) -> None:
    if "equals" in operators:
        conflicts = [op for op in _EXCLUSIVE_WITH_EQUALS if op in operators]
        if conflicts:
            raise ValueError(f"{where}: 'equals' assertion conflicts with: {', '.join(conflicts)}")
    for positive in ("contains", "matches"):
        if positive in operators and f"not_{positive}" in operators:
            raise ValueError(f"{where}: '{positive}' and 'not_{positive}' cannot be used together")


def _compile_patterns(operators: dict[str, Any], where: str) -> None:
    for op in ("matches", "not_matches"):
        if op in operators:
            try:
                re.compile(operators[op])
            except re.error as e:
                raise ValueError(f"{where}: invalid regex {operators[op]!r}: {e}") from e


@dataclass(frozen=True)
class BodyAssert:
    path: str
    operators: dict[str, Any]

    @classmethod
    def parse(cls, path: str, spec: Any) -> BodyAssert:
        where = f"path {path!r}"
        if not isinstance(spec, dict):
            return cls(path, {"equals": stringify(spec)})

        operators: dict[str, Any] = {}
        for key, value in spec.items():
            op = _BODY_ALIASES.get(key, key)
            if op in _STRING_OPERATORS:
                operators[op] = stringify(value)
            elif op == "present":
                if not isinstance(value, bool):
                    raise ValueError(f"{where}: 'present' must be true or false")
                operators[op] = value
            elif op in ("length", "greater_than", "less_than"):
                if isinstance(value, bool) or not isinstance(value, (int, float)):
                    raise ValueError(f"{where}: '{key}' must be a number")
                operators[op] = value
            elif op == "type":
                if value not in VALUE_TYPES:
                    raise ValueError(f"invalid type {value!r} for {where}, expected one of {', '.join(VALUE_TYPES)}")
                operators[op] = value
            else:
                raise ValueError(f"{where}: unknown assertion '{key}'")

        if not operators:
            raise ValueError(f"at least one assertion must be provided for {where}")
        _check_conflicts(operators, where)
        _compile_patterns(operators, where)
        return cls(path, operators)

    def check(self, data: Any, fixtures: Mapping[str, str]) -> list[str]:
        value = resolve_path(data, self.path)
        present = self.operators.get("present")
        if value is _MISSING:
            if present is False:
                return []
            return [f"{self.path}: expected a value but the path was not found"]
        if present is False:
            return [f"{self.path}: expected no value but got {stringify(value)!r}"]

        failures = _check_strings(self.path, stringify(value), self.operators, fixtures)
        failures.extend(self._check_structure(value))
        return failures

    def _check_structure(self, value: Any) -> list[str]:
        failures = []
        path = self.path
        if "length" in self.operators:
            expected = self.operators["length"]
            if isinstance(value, (str, list)):
                if len(value) != expected:
                    failures.append(f"{path}: expected length {expected} but got {len(value)}")
            else:
                failures.append(f"{path}: value is not a string or array")

        is_number = isinstance(value, (int, float)) and not isinstance(value, bool)
        for op, symbol, compare in (
            ("greater_than", ">", lambda a, b: a > b),
            ("less_than", "<", lambda a, b: a < b),
        ):
            if op not in self.operators:
                continue
            expected = self.operators[op]
            if not is_number:
                failures.append(f"{path}: value is not a number")
            elif not compare(value, expected):
                failures.append(f"{path}: expected value {symbol} {expected} but got {value}")

        if "type" in self.operators:
            expected = self.operators["type"]
            actual = json_type(value)
            if actual != expected:
                failures.append(f"{path}: expected type {expected} but got {actual}")
        return failures


@dataclass(frozen=True)
class HeaderAssert:
    name: str
    operators: dict[str, Any]

    @classmethod
    def parse(cls, name: str, spec: Any) -> HeaderAssert:
        where = f"header {name!r}"
        if not isinstance(spec, dict):
            return cls(name, {"equals": stringify(spec)})

        operators: dict[str, Any] = {}
        for key, value in spec.items():
            op = "present" if key == "is_present" else key
            if op in _STRING_OPERATORS:
                operators[op] = stringify(value)
            elif op == "present":
                if not isinstance(value, bool):
                    raise ValueError(f"{where}: 'present' must be true or false")
                operators[op] = value
            else:
                raise ValueError(f"{where}: unknown assertion '{key}'")

        if not operators:
            raise ValueError(f"at least one assertion must be provided for {where}")
        _check_conflicts(operators, where)
        _compile_patterns(operators, where)
        return cls(name, operators)

    def check(self, headers: Mapping[str, str], fixtures: Mapping[str, str]) -> list[str]:
        value = headers.get(self.name)
        present = self.operators.get("present")
        if value is None:
            if present is False:
                return []
            return [f"header {self.name}: expected to be present"]
        if present is False:
            return [f"header {self.name}: expected to be absent but got {value!r}"]
        return _check_strings(f"header {self.name}", value, self.operators, fixtures)


def json_type(value: Any) -> str:
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, int):
        return "int"
    if isinstance(value, float):
        return "float"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    if isinstance(value, dict):
        return "object"
    return "null"


def _check_strings(where: str, actual: str, operators: dict[str, Any], fixtures: Mapping[str, str]) -> list[str]:
    failures = []
    for op in _STRING_OPERATORS:
        if op not in operators:
            continue
        expected = interpolate(operators[op], fixtures)
        if op == "equals" and actual != expected:
            failures.append(f"{where}: expected {expected!r} but got {actual!r}")
        elif op == "not_equals" and actual == expected:
            failures.append(f"{where}: should not equal {expected!r}")
        elif op == "contains" and expected not in actual:
            failures.append(f"{where}: {actual!r} does not contain {expected!r}")
        elif op == "not_contains" and expected in actual:
            failures.append(f"{where}: {actual!r} contains {expected!r}")
        elif op in ("matches", "not_matches"):
            try:
                found = re.search(expected, actual) is not None
            except re.error as e:
                failures.append(f"{where}: invalid regex {expected!r}: {e}")
                continue
            if op == "matches" and not found:
                failures.append(f"{where}: {actual!r} does not match regex {expected!r}")
            elif op == "not_matches" and found:
                failures.append(f"{where}: {actual!r} matches regex {expected!r}")
    return failures


def parse_body_asserts(raw: Any) -> list[BodyAssert]:
    if raw is None:
        return []
    if not isinstance(raw, dict):
        raise ValueError("body_asserts must be a mapping of path to assertion")
    return [BodyAssert.parse(str(path), spec) for path, spec in raw.items()]


def parse_header_asserts(raw: Any) -> list[HeaderAssert]:
    if raw is None:
        return []
    if not isinstance(raw, dict):
        raise ValueError("header_asserts must be a mapping of header name to assertion")
    return [HeaderAssert.parse(str(name), spec) for name, spec in raw.items()]


def check_body(asserts: list[BodyAssert], body: bytes | str, fixtures: Mapping[str, str]) -> list[str]:
    if not asserts:
        return []
    text = body.decode(errors="replace") if isinstance(body, bytes) else body
    try:
        data = json.loads(text) if text.strip() else None
    except json.JSONDecodeError:
        if all(a.path == ROOT_PATH for a in asserts):
            data = text
        else:
            return ["response body is not valid JSON"]

    failures = []
    for body_assert in asserts:
        failures.extend(body_assert.check(data, fixtures))
    return failures


def check_headers(asserts: list[HeaderAssert], headers: Mapping[str, str], fixtures: Mapping[str, str]) -> list[str]:
    failures = []
    for header_assert in asserts:
        failures.extend(header_assert.check(headers, fixtures))
    return failures
