"""Tests for body and header assertions."""

from __future__ import annotations

import pytest

from harborqa.adapters.assertions import (
    BodyAssert,
    HeaderAssert,
    check_body,
    check_headers,
    parse_body_asserts,
    parse_header_asserts,
    resolve_path,
    stringify,
)

BODY = b"""{
  "user": {"name": "alice", "age": 31, "admin": false},
  "items": [{"id": 1, "tags": ["a", "b"]}, {"id": 2, "tags": []}],
  "score": 4.5,
  "note": null
}"""


def check(raw: dict, body: bytes = BODY, fixtures: dict | None = None) -> list[str]:
    return check_body(parse_body_asserts(raw), body, fixtures or {})


class TestResolvePath:
    def test_nested_and_indexed(self) -> None:
        data = {"a": {"b": [{"c": 1}, {"c": 2}]}}

        assert resolve_path(data, "a.b[1].c") == 2
        assert resolve_path(data, "a.b.0.c") == 1
        assert resolve_path(data, "$.a.b[0].c") == 1
        assert resolve_path(data, "$") is data

    def test_stringify(self) -> None:
        assert stringify(True) == "true"
        assert stringify(None) == "null"
        assert stringify(3) == "3"
        assert stringify({"a": [1, 2]}) == '{"a":[1,2]}'


class TestBodyAssertions:
    def test_scalar_shorthand_is_equals(self) -> None:
        assert check({"user.name": "alice", "user.age": 31, "user.admin": False}) == []

    def test_equals_failure_message(self) -> None:
        assert check({"user.name": "bob"}) == ["user.name: expected 'bob' but got 'alice'"]

    def test_string_operators(self) -> None:
        raw = {
            "user.name": {"contains": "lic", "not_contains": "bob", "matches": "^a.*e$", "not_equals": "carol"},
            "items[0].tags": {"not_matches": "z"},
        }

        assert check(raw) == []

    def test_numeric_comparisons(self) -> None:
        assert check({"user.age": {">": 30, "<": 40}, "score": {"greater_than": 4}}) == []
        assert check({"user.age": {"less_than": 18}}) == ["user.age: expected value < 18 but got 31"]
        assert check({"user.name": {"greater_than": 1}}) == ["user.name: value is not a number"]

    def test_length(self) -> None:
        assert check({"items": {"length": 2}, "items[0].tags": {"size": 2}, "user.name": {"length": 5}}) == []
        assert check({"items[1].tags": {"length": 1}}) == ["items[1].tags: expected length 1 but got 0"]
        assert check({"user.age": {"length": 1}}) == ["user.age: value is not a string or array"]

    def test_types(self) -> None:
        raw = {
            "user.name": {"type": "string"},
            "user.age": {"type": "int"},
            "score": {"type": "float"},
            "user.admin": {"type": "bool"},
            "items": {"type": "array"},
            "user": {"type": "object"},
        }

        assert check(raw) == []
        assert check({"user.age": {"type": "string"}}) == ["user.age: expected type string but got int"]

    def test_missing_path_fails(self) -> None:
        assert check({"user.email": {"contains": "@"}}) == ["user.email: expected a value but the path was not found"]

    def test_present_false(self) -> None:
        assert check({"user.email": {"present": False}}) == []
        assert check({"user.name": {"present": False}}) == ["user.name: expected no value but got 'alice'"]

    def test_null_is_a_value(self) -> None:
        assert check({"note": None}) == []

    def test_fixtures_are_interpolated(self) -> None:
        assert check({"user.name": "{{ expected_user }}"}, fixtures={"expected_user": "alice"}) == []

    def test_invalid_json_body(self) -> None:
        assert check({"user.name": "alice"}, body=b"<html>") == ["response body is not valid JSON"]

    def test_root_assertion_on_plain_text(self) -> None:
        assert check({"$": {"contains": "pong"}}, body=b"pong!") == []

    def test_all_failures_are_reported(self) -> None:
        failures = check({"user.name": "bob", "user.age": 1})

        assert len(failures) == 2

    def test_no_asserts_skips_parsing(self) -> None:
        assert check_body([], b"not json", {}) == []


class TestParsing:
    def test_equals_conflicts(self) -> None:
        with pytest.raises(ValueError, match="'equals' assertion conflicts with: contains"):
            BodyAssert.parse("a", {"equals": "x", "contains": "y"})

    def test_contains_and_not_contains_conflict(self) -> None:
        with pytest.raises(ValueError, match="cannot be used together"):
            BodyAssert.parse("a", {"contains": "x", "not_contains": "y"})

    def test_invalid_regex(self) -> None:
        with pytest.raises(ValueError, match="invalid regex"):
            BodyAssert.parse("a", {"matches": "("})

    def test_invalid_type(self) -> None:
        with pytest.raises(ValueError, match="invalid type 'number'"):
            BodyAssert.parse("a", {"type": "number"})

    def test_unknown_operator(self) -> None:
        with pytest.raises(ValueError, match="unknown assertion 'startswith'"):
            BodyAssert.parse("a", {"startswith": "x"})

    def test_empty_operators(self) -> None:
        with pytest.raises(ValueError, match="at least one assertion"):
            BodyAssert.parse("a", {})

    def test_numeric_operators_need_numbers(self) -> None:
        with pytest.raises(ValueError, match="must be a number"):
            BodyAssert.parse("a", {"length": "two"})

    def test_mapping_required(self) -> None:
        with pytest.raises(ValueError):
            parse_body_asserts(["a"])
        with pytest.raises(ValueError):
            parse_header_asserts("x")


class TestHeaderAssertions:
    HEADERS = {"content-type": "application/json; charset=utf-8", "x-request-id": "abc-123"}

    def check(self, raw: dict) -> list[str]:
        return check_headers(parse_header_asserts(raw), self.HEADERS, {})

    def test_operators(self) -> None:
        raw = {
            "content-type": {"contains": "json"},
            "x-request-id": {"matches": "^[a-z]+-\\d+$"},
        }

        assert self.check(raw) == []

    def test_shorthand_equals(self) -> None:
        assert self.check({"x-request-id": "abc-999"}) == ["header x-request-id: expected 'abc-999' but got 'abc-123'"]

    def test_presence(self) -> None:
        assert self.check({"x-missing": {"is_present": False}}) == []
        assert self.check({"x-missing": {"contains": "a"}}) == ["header x-missing: expected to be present"]
        assert self.check({"x-request-id": {"present": False}}) == [
            "header x-request-id: expected to be absent but got 'abc-123'"
        ]

    def test_header_operators_are_limited(self) -> None:
        with pytest.raises(ValueError, match="unknown assertion 'length'"):
            HeaderAssert.parse("x", {"length": 3})
