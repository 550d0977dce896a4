"""Event consumers that present run results."""

from harborqa.reporters.base import FileReporter
from harborqa.reporters.console import ConsoleReporter
from harborqa.reporters.html import HTMLReporter
from harborqa.reporters.json_report import JSONReporter

__all__ = [
    "ConsoleReporter",
    "FileReporter",
    "HTMLReporter",
    "JSONReporter",
]
