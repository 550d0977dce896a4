"""Suite name filters for ``--suite``."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class SuiteFilter:
    """Comma-separated suite selectors.

    ``api`` matches exactly, ``api*`` by prefix, ``*api`` by suffix and
    ``*api*`` by substring. An empty filter matches every suite.
    """

    terms: tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def parse(cls, value: str | None) -> SuiteFilter:
        if not value:
            return cls()
        return cls(tuple(term.strip() for term in value.split(",") if term.strip()))

    def __bool__(self) -> bool:
        return bool(self.terms)

    def matches(self, name: str) -> bool:
        if not self.terms:
            return True
        return any(self._match_term(term, name) for term in self.terms)

    @staticmethod
    def _match_term(term: str, name: str) -> bool:
        starts = term.startswith("*")
        ends = term.endswith("*") and len(term) > 1
        core = term.strip("*")
        if not core:
            return True
        if starts and ends:
            return core in name
        if ends:
            return name.startswith(core)
        if starts:
            return name.endswith(core)
        return name == core
