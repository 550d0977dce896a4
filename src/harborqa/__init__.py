"""HarborQA - ephemeral container test environments.

Suites declare units (containers) and tests that run against them. Each
suite gets its own network, its units are started in dependency order,
tests run, and everything is torn down again.

Example:
    >>> from harborqa import Runner, builtin_registries, get_runtime, load_settings
    >>> runner = Runner(load_settings(), builtin_registries(), get_runtime())
    >>> summary = runner.run()
"""

__version__ = "0.3.0"

from harborqa.adapters import builtin_registries, register_builtin_adapters
from harborqa.config import HarborSettings, load_settings
from harborqa.core import CancellationToken, Event, EventType, SuiteResult, TestResult, TestSuite
from harborqa.errors import HarborQAError
from harborqa.infra import get_runtime
from harborqa.runner import Runner, RunSummary, SuiteFilter, dry_run

__all__ = [
    "CancellationToken",
    "Event",
    "EventType",
    "HarborQAError",
    "HarborSettings",
    "RunSummary",
    "Runner",
    "SuiteFilter",
    "SuiteResult",
    "TestResult",
    "TestSuite",
    "__version__",
    "builtin_registries",
    "dry_run",
    "get_runtime",
    "load_settings",
    "register_builtin_adapters",
]
