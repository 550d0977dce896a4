"""Settings and suite loading."""

from harborqa.config.durations import format_duration, parse_duration
from harborqa.config.loader import discover_suite_files, load_suite, read_document
from harborqa.config.settings import HarborSettings, load_settings
from harborqa.config.validators import SchemaValidator

__all__ = [
    "HarborSettings",
    "SchemaValidator",
    "discover_suite_files",
    "format_duration",
    "load_settings",
    "load_suite",
    "parse_duration",
    "read_document",
]
