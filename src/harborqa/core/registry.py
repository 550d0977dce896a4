"""Kind -> constructor registries for units and tests."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Generic, TypeVar

from harborqa.core.test import SuiteTest
from harborqa.core.unit import Unit
from harborqa.errors.base import ConfigurationError, ErrorContext, HarborQAError, UnknownKindError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class DecodeContext:
    """What a constructor may need beyond its own mapping."""

    suite: str = ""
    working_dir: Path = field(default_factory=Path.cwd)
    startup_timeout: float | None = None


Factory = Callable[[dict[str, Any], DecodeContext], T]


class KindRegistry(Generic[T]):
    """Thread-safe mapping of kind identifiers to constructors.

    Example:
        >>> units = KindRegistry[Unit]("unit")
        >>> units.register("postgres", PostgresUnit.from_config)
        >>> unit = units.build("postgres", {"name": "db"}, DecodeContext())
    """

    def __init__(self, family: str) -> None:
        self.family = family
        self._factories: dict[str, Factory[T]] = {}
        self._lock = threading.Lock()

    def register(self, kind: str, factory: Factory[T], replace: bool = False) -> None:
        with self._lock:
            if kind in self._factories and not replace:
                raise ValueError(f"{self.family} kind '{kind}' is already registered")
            self._factories[kind] = factory
        logger.debug(f"Registered {self.family} kind: {kind}")

    def unregister(self, kind: str) -> bool:
        with self._lock:
            return self._factories.pop(kind, None) is not None

    def kinds(self) -> list[str]:
        with self._lock:
            return sorted(self._factories)

    def __contains__(self, kind: object) -> bool:
        with self._lock:
            return kind in self._factories

    def build(self, kind: str, config: dict[str, Any], context: DecodeContext) -> T:
        """Construct an instance of ``kind`` from its raw mapping.

        Raises:
            UnknownKindError: nothing is registered under ``kind``.
            ConfigurationError: the constructor rejected the mapping.
        """
        with self._lock:
            factory = self._factories.get(kind)
        if factory is None:
            raise UnknownKindError(
                kind,
                family=self.family,
                context=ErrorContext(suite=context.suite or None, operation="decode"),
                suggestions=[f"Known {self.family} kinds: {', '.join(self.kinds()) or 'none'}"],
            )

        try:
            return factory(config, context)
        except HarborQAError:
            raise
        except (KeyError, ValueError, TypeError) as e:
            name = config.get("name", "?")
            raise ConfigurationError(
                f"invalid {kind} {self.family} '{name}': {e}",
                context=ErrorContext(
                    suite=context.suite or None,
                    unit=name if self.family == "unit" else None,
                    test=name if self.family == "test" else None,
                    operation="decode",
                ),
                cause=e,
            ) from e


@dataclass
class Registries:
    units: KindRegistry[Unit] = field(default_factory=lambda: KindRegistry("unit"))
    tests: KindRegistry[SuiteTest] = field(default_factory=lambda: KindRegistry("test"))
