"""Suite discovery and decoding.

Suites live at ``<base>/tests/<suite>/suite.yml``. The loader decodes
``name``, ``kind`` and ``target`` itself and hands every unit and test
mapping to the constructor registered for its kind.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml

from harborqa.config.validators import SchemaValidator
from harborqa.core.registry import DecodeContext, Registries
from harborqa.core.suite import Fixture, TestSuite
from harborqa.errors.base import ConfigurationError, ErrorContext, HarborQAError, SuiteValidationError

logger = logging.getLogger(__name__)

SUITE_FILENAMES = ("suite.yml", "suite.yaml")
TESTS_DIR = "tests"


def discover_suite_files(base_dir: str | Path) -> list[Path]:
    """Find ``<base>/tests/*/suite.yml`` files, sorted by suite directory."""
    tests_dir = Path(base_dir) / TESTS_DIR
    if not tests_dir.is_dir():
        logger.debug(f"No tests directory at {tests_dir}")
        return []

    found = []
    for suite_dir in sorted(p for p in tests_dir.iterdir() if p.is_dir()):
        for filename in SUITE_FILENAMES:
            candidate = suite_dir / filename
            if candidate.is_file():
                found.append(candidate)
                break
    return found


def read_document(path: str | Path) -> dict[str, Any]:
    path = Path(path)
    try:
        with open(path) as f:
            document = yaml.safe_load(f)
    except OSError as e:
        raise ConfigurationError(f"cannot read suite file {path}", cause=e) from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"invalid YAML in {path}: {e}", cause=e) from e

    if not isinstance(document, dict):
        raise SuiteValidationError(
            issues=[{"path": [], "message": f"{path} must contain a mapping at the top level"}],
            context=ErrorContext(suite=path.parent.name, operation="load"),
        )
    return document


def _fixture_value(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def load_suite(
    path: str | Path,
    registries: Registries,
    startup_timeout: float | None = None,
) -> TestSuite:
    """Read, validate and decode one suite file.

    Raises:
        SuiteValidationError: the document or its units/tests are invalid.
        TargetResolutionError: a target does not name an existing unit.
        UnknownKindError: a unit or test kind has no registered adapter.
    """
    path = Path(path)
    document = read_document(path)
    name = document.get("name") if isinstance(document.get("name"), str) else path.parent.name
    context = ErrorContext(suite=name, operation="load")

    issues = SchemaValidator().validate(document)
    if issues:
        raise SuiteValidationError(issues=issues, context=context)

    decode = DecodeContext(suite=name, working_dir=path.parent, startup_timeout=startup_timeout)

    units = []
    tests = []
    for family, entries, registry, sink in (
        ("units", document["units"], registries.units, units),
        ("tests", document.get("tests") or [], registries.tests, tests),
    ):
        for index, entry in enumerate(entries):
            try:
                sink.append(registry.build(entry["kind"], dict(entry), decode))
            except HarborQAError as e:
                if isinstance(e, SuiteValidationError):
                    for issue in e.issues:
                        issues.append({**issue, "path": [family, index, *issue.get("path", [])]})
                else:
                    issues.append({"path": [family, index], "message": e.message})

    if issues:
        raise SuiteValidationError(issues=issues, context=context)

    suite = TestSuite(
        name=name,
        units=units,
        tests=tests,
        target_name=document.get("target"),
        kind=document["kind"],
        path=path,
        fixtures=[
            Fixture(name=f["name"], value=_fixture_value(f.get("value")), file=f.get("file"))
            for f in document.get("fixtures") or []
        ],
        before_all=document.get("before_all"),
        after_all=document.get("after_all"),
        before_each=document.get("before_each"),
        after_each=document.get("after_each"),
    )
    suite.validate()
    logger.debug(f"Loaded suite {name} with {len(units)} unit(s) and {len(tests)} test(s)")
    return suite
