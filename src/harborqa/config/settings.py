"""Process-level settings."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from harborqa.config.durations import parse_duration

DEFAULT_CONFIG_FILE = "harborqa.yml"


class HarborSettings(BaseSettings):
    """Settings for a harborqa run.

    Every field can be set through a ``HARBORQA_`` environment variable,
    e.g. ``HARBORQA_MAX_RETRIES=5`` or ``HARBORQA_RETRY_DELAY=5s``.
    """

    model_config = SettingsConfigDict(
        env_prefix="HARBORQA_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    base_dir: Path = Path(".")
    max_retries: int = 3
    retry_delay: float = 2.0
    build_timeout: float = 600.0
    startup_timeout: float | None = None
    cleanup_timeout: float = 60.0
    network_prefix: str = "harborqa-"
    parallelism: int | None = None
    verbose: bool = False
    debug: bool = False
    cleanup_cache: bool = False

    @field_validator("retry_delay", "build_timeout", "cleanup_timeout", "startup_timeout", mode="before")
    @classmethod
    def validate_duration(cls, v: Any) -> float | None:
        return parse_duration(v)

    @field_validator("max_retries")
    @classmethod
    def validate_max_retries(cls, v: int) -> int:
        if v < 0:
            raise ValueError("max_retries must not be negative")
        return v

    @field_validator("parallelism")
    @classmethod
    def validate_parallelism(cls, v: int | None) -> int | None:
        if v is not None and v < 1:
            raise ValueError("parallelism must be at least 1")
        return v

    @field_validator("network_prefix")
    @classmethod
    def validate_prefix(cls, v: str) -> str:
        if not v:
            raise ValueError("network_prefix must not be empty")
        return v


def load_settings(config_path: str | Path | None = None, **overrides: Any) -> HarborSettings:
    """Load settings from an optional YAML file, the environment, and overrides.

    Priority: overrides > env vars > config file > defaults. Overrides whose
    value is None are ignored so unset CLI flags do not mask the environment.
    """
    file_data: dict[str, Any] = {}
    if config_path is not None:
        path = Path(config_path)
        if path.exists():
            with open(path) as f:
                file_data = yaml.safe_load(f) or {}

    settings = HarborSettings()
    env_set = settings.model_fields_set
    data = {k: v for k, v in file_data.items() if k not in env_set}
    data.update({k: v for k, v in settings.model_dump().items() if k in env_set})
    data.update({k: v for k, v in overrides.items() if v is not None})
    return HarborSettings(**data)
