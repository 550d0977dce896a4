"""Suite execution."""

from harborqa.runner.filters import SuiteFilter
from harborqa.runner.runner import (
    DryRunEntry,
    LoadedSuite,
    Runner,
    RunSummary,
    discover_suites,
    dry_run,
    load_suites,
)
from harborqa.runner.scripts import run_script
from harborqa.runner.suite_runner import SuiteRunner, SuiteRunnerConfig, new_session_id

__all__ = [
    "DryRunEntry",
    "LoadedSuite",
    "RunSummary",
    "Runner",
    "SuiteFilter",
    "SuiteRunner",
    "SuiteRunnerConfig",
    "discover_suites",
    "dry_run",
    "load_suites",
    "new_session_id",
    "run_script",
]
