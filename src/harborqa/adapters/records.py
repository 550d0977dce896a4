"""Expectations over query results, shared by the ``postgres`` and ``mongo`` tests.

Both kinds turn a query into a list of records (rows or documents) and
check them with the same vocabulary, only the nouns differ::

    expect:
      row_count: 2            # document_count
      min_row_count: 1        # min_document_count
      max_row_count: 5        # max_document_count
      no_rows: false          # no_documents
      rows: [{id: 1}]         # documents, compared in order
      column_values: {n: 3}   # field_values, needs exactly one record
      contains: [{email: "{{ email }}"}]
      not_contains: [{status: deleted}]
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from harborqa.core.interpolation import interpolate

Record = dict[str, Any]


@dataclass(frozen=True)
class Vocabulary:
    """YAML keys of one record kind, e.g. ``row``/``column``/``table``."""

    record: str
    field: str
    container: str

    @property
    def count_key(self) -> str:
        return f"{self.record}_count"

    @property
    def min_key(self) -> str:
        return f"min_{self.record}_count"

    @property
    def max_key(self) -> str:
        return f"max_{self.record}_count"

    @property
    def empty_key(self) -> str:
        return f"no_{self.record}s"

    @property
    def records_key(self) -> str:
        return f"{self.record}s"

    @property
    def values_key(self) -> str:
        return f"{self.field}_values"

    @property
    def exists_key(self) -> str:
        return f"{self.container}_exists"

    def keys(self) -> set[str]:
        return {
            self.count_key,
            self.min_key,
            self.max_key,
            self.empty_key,
            self.records_key,
            self.values_key,
            self.exists_key,
            "contains",
            "not_contains",
        }


ROWS = Vocabulary(record="row", field="column", container="table")
DOCUMENTS = Vocabulary(record="document", field="field", container="collection")


@dataclass
class RecordExpectation:
    count: int | None = None
    min_count: int | None = None
    max_count: int | None = None
    empty: bool = False
    records: list[Record] = field(default_factory=list)
    values: Record = field(default_factory=dict)
    contains: list[Record] = field(default_factory=list)
    not_contains: list[Record] = field(default_factory=list)
    exists: str = ""

    def only_checks_existence(self) -> bool:
        return bool(self.exists) and not self.checks_records()

    def checks_records(self) -> bool:
        return (
            self.count is not None
            or self.min_count is not None
            or self.max_count is not None
            or self.empty
            or bool(self.records or self.values or self.contains or self.not_contains)
        )


def _optional_int(raw: Mapping[str, Any], key: str) -> int | None:
    value = raw.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(f"'{key}' must be a non-negative integer")
    return value


def _record_list(raw: Mapping[str, Any], key: str) -> list[Record]:
    value = raw.get(key) or []
    if not isinstance(value, list) or not all(isinstance(item, dict) for item in value):
        raise ValueError(f"'{key}' must be a list of mappings")
    return [dict(item) for item in value]


def parse_expectation(raw: Any, vocabulary: Vocabulary) -> RecordExpectation:
    """Decode an ``expect`` mapping. At least one expectation is required."""
    if not isinstance(raw, dict):
        raise ValueError("'expect' is required and must be a mapping")
    unknown = sorted(set(raw) - vocabulary.keys())
    if unknown:
        raise ValueError(f"unknown expect field(s): {', '.join(unknown)}")

    values = raw.get(vocabulary.values_key) or {}
    if not isinstance(values, dict):
        raise ValueError(f"'{vocabulary.values_key}' must be a mapping")

    expectation = RecordExpectation(
        count=_optional_int(raw, vocabulary.count_key),
        min_count=_optional_int(raw, vocabulary.min_key),
        max_count=_optional_int(raw, vocabulary.max_key),
        empty=bool(raw.get(vocabulary.empty_key, False)),
        records=_record_list(raw, vocabulary.records_key),
        values=dict(values),
        contains=_record_list(raw, "contains"),
        not_contains=_record_list(raw, "not_contains"),
        exists=str(raw.get(vocabulary.exists_key) or ""),
    )
    if not expectation.exists and not expectation.checks_records():
        raise ValueError("at least one expectation must be provided")
    return expectation


def interpolate_value(value: Any, fixtures: Mapping[str, str]) -> Any:
    if isinstance(value, str):
        return interpolate(value, fixtures)
    if isinstance(value, dict):
        return {key: interpolate_value(item, fixtures) for key, item in value.items()}
    if isinstance(value, list):
        return [interpolate_value(item, fixtures) for item in value]
    return value


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def values_equal(actual: Any, expected: Any) -> bool:
    """Loose equality between a database value and a YAML value.

    Numbers compare as floats. Values YAML cannot express (timestamps,
    UUIDs, ObjectIds) compare by their string form when a string is expected.
    """
    if actual is None or expected is None:
        return actual is None and expected is None
    if _is_number(actual) and _is_number(expected):
        return float(actual) == float(expected)
    if isinstance(actual, bytes):
        actual = actual.decode("utf-8", errors="replace")
    if isinstance(expected, str) and not isinstance(actual, (str, bool, int, float, Decimal, dict, list)):
        return str(actual) == expected
    if isinstance(actual, dict) and isinstance(expected, dict):
        return actual.keys() == expected.keys() and all(values_equal(actual[k], expected[k]) for k in expected)
    if isinstance(actual, (list, tuple)) and isinstance(expected, list):
        return len(actual) == len(expected) and all(values_equal(a, e) for a, e in zip(actual, expected))
    return type(actual) is type(expected) and actual == expected


def record_matches(actual: Record, expected: Mapping[str, Any]) -> bool:
    return all(key in actual and values_equal(actual[key], value) for key, value in expected.items())


def _compare(actual: Record, expected: Mapping[str, Any], where: str, vocabulary: Vocabulary) -> list[str]:
    failures = []
    for key, value in expected.items():
        if key not in actual:
            failures.append(f"{where}{vocabulary.field} '{key}' not found in result")
        elif not values_equal(actual[key], value):
            failures.append(
                f"{where}{vocabulary.field} '{key}': expected {value!r} ({type(value).__name__}), "
                f"got {actual[key]!r} ({type(actual[key]).__name__})"
            )
    return failures


def check_records(
    records: list[Record],
    expect: RecordExpectation,
    vocabulary: Vocabulary,
    fixtures: Mapping[str, str],
) -> list[str]:
    """Failure messages, empty when every expectation holds."""
    noun = f"{vocabulary.record}s"
    actual = len(records)

    if expect.empty:
        if actual:
            return [f"expected no {noun}, but got {actual} {noun}"]
        return []

    failures = []
    if expect.count is not None and actual != expect.count:
        failures.append(f"expected {expect.count} {noun}, but got {actual} {noun}")
    if expect.min_count is not None and actual < expect.min_count:
        failures.append(f"expected at least {expect.min_count} {noun}, but got {actual} {noun}")
    if expect.max_count is not None and actual > expect.max_count:
        failures.append(f"expected at most {expect.max_count} {noun}, but got {actual} {noun}")

    if expect.records:
        expected_records = interpolate_value(expect.records, fixtures)
        if len(expected_records) != actual:
            failures.append(f"expected {len(expected_records)} {noun}, but got {actual} {noun}")
        else:
            for i, (record, wanted) in enumerate(zip(records, expected_records), start=1):
                failures.extend(_compare(record, wanted, f"{vocabulary.record} {i}: ", vocabulary))

    if expect.values:
        if actual != 1:
            failures.append(f"{vocabulary.values_key} requires exactly 1 {vocabulary.record}, but got {actual} {noun}")
        else:
            failures.extend(_compare(records[0], interpolate_value(expect.values, fixtures), "", vocabulary))

    for wanted in interpolate_value(expect.contains, fixtures):
        if not any(record_matches(record, wanted) for record in records):
            failures.append(f"expected {vocabulary.record} not found in results: {wanted}")
    for unwanted in interpolate_value(expect.not_contains, fixtures):
        if any(record_matches(record, unwanted) for record in records):
            failures.append(f"found {vocabulary.record} that should not exist: {unwanted}")
    return failures


def describe_records(records: list[Record], limit: int = 10) -> str:
    lines = [f"=== Results ({len(records)}) ==="]
    for i, record in enumerate(records[:limit], start=1):
        lines.append(f"{i}: {record}")
    if len(records) > limit:
        lines.append(f"… (+{len(records) - limit} more)")
    return "\n".join(lines)
