"""``{{ fixture }}`` and ``{{ unit.var }}`` interpolation, and start ordering.

A unit's env may reference another unit's connection variables, e.g.
``DATABASE_URL: "{{ db.local_dsn }}"``. Such references decide the order in
which units start: ``plan_unit_waves`` groups units into waves whose
dependencies all live in earlier waves.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING

from harborqa.errors.base import ConfigurationError, DependencyCycleError, ErrorContext, SetupError

if TYPE_CHECKING:
    from harborqa.core.unit import Unit

FIXTURE_PATTERN = re.compile(r"\{\{\s*([A-Za-z0-9_]+)\s*\}\}")
UNIT_VARIABLE_PATTERN = re.compile(r"\{\{\s*([A-Za-z0-9_-]+)\.([A-Za-z0-9_]+)\s*\}\}")


@dataclass(frozen=True)
class EnvDependency:
    dependant: str
    dependency: str
    env_name: str
    variable: str


def interpolate(text: str, fixtures: Mapping[str, str], strict: bool = False) -> str:
    """Replace ``{{ name }}`` with fixture values.

    Unknown names are left untouched unless ``strict`` is set.
    """

    def replace(match: re.Match[str]) -> str:
        name = match.group(1)
        if name in fixtures:
            return fixtures[name]
        if strict:
            raise ConfigurationError(f"unknown fixture '{name}'")
        return match.group(0)

    return FIXTURE_PATTERN.sub(replace, text)


def env_dependencies(units: Iterable[Unit]) -> list[EnvDependency]:
    units = list(units)
    names = {unit.name for unit in units}
    dependencies = []

    for unit in units:
        for key, value in unit.raw_env().items():
            for match in UNIT_VARIABLE_PATTERN.finditer(str(value)):
                dependency, variable = match.group(1), match.group(2)
                if dependency not in names:
                    raise ConfigurationError(
                        f"env {key} of unit '{unit.name}' references unknown unit '{dependency}'",
                        context=ErrorContext(unit=unit.name, operation="resolve_env"),
                    )
                if dependency == unit.name:
                    raise DependencyCycleError([unit.name, unit.name])
                dependencies.append(EnvDependency(unit.name, dependency, key, variable))
    return dependencies


def plan_unit_waves(units: Iterable[Unit]) -> list[list[Unit]]:
    """Group units into start waves; declared order is kept within a wave.

    Raises:
        ConfigurationError: an env value references a unit that does not exist.
        DependencyCycleError: references form a cycle.
    """
    units = list(units)
    requires: dict[str, set[str]] = {unit.name: set() for unit in units}
    for dep in env_dependencies(units):
        requires[dep.dependant].add(dep.dependency)

    waves: list[list[Unit]] = []
    placed: set[str] = set()
    pending = list(units)

    while pending:
        wave = [unit for unit in pending if requires[unit.name] <= placed]
        if not wave:
            raise DependencyCycleError(_find_cycle({u.name: requires[u.name] for u in pending}))
        waves.append(wave)
        placed.update(unit.name for unit in wave)
        pending = [unit for unit in pending if unit.name not in placed]

    return waves


def _find_cycle(graph: dict[str, set[str]]) -> list[str]:
    for start in graph:
        path = [start]
        seen = {start}
        node = start
        while True:
            nxt = next((n for n in sorted(graph[node]) if n in graph), None)
            if nxt is None:
                break
            if nxt in seen:
                return path[path.index(nxt):] + [nxt]
            path.append(nxt)
            seen.add(nxt)
            node = nxt
    return sorted(graph)


def resolve_env(unit: Unit, units: Mapping[str, Unit], fixtures: Mapping[str, str]) -> dict[str, str]:
    """Substitute unit variables and fixtures into ``unit``'s raw env.

    Every referenced unit must already be started.
    """
    resolved = {}
    for key, value in unit.raw_env().items():
        text = str(value)

        def replace(match: re.Match[str]) -> str:
            dependency = units[match.group(1)]
            if dependency.options is None:
                raise SetupError(
                    f"unit '{dependency.name}' is not started; cannot resolve {match.group(0)}",
                    context=ErrorContext(unit=unit.name, operation="resolve_env"),
                    recoverable=False,
                )
            return dependency.get(match.group(2))

        text = UNIT_VARIABLE_PATTERN.sub(replace, text)
        resolved[key] = interpolate(text, fixtures)
    return resolved
