"""Ordered, idempotent teardown ledger shared by all running suites."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable

from harborqa.cleanup.targets import CLEANUP_ORDER, CleanupTarget, ResourceKind
from harborqa.core.cancellation import CancellationToken
from harborqa.errors.base import CleanupError, CleanupFailures, OperationCancelledError

logger = logging.getLogger(__name__)


class CleanupRegistry:
    """Thread-safe ledger of deletion obligations.

    Removal always runs kind by kind in ``CLEANUP_ORDER``: every registered
    container is attempted before any network. Each removal is independent;
    failures are collected and raised together once every target has been
    attempted. A target leaves the ledger once it is confirmed removed, so
    repeating a teardown is a no-op.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._targets: dict[ResourceKind, dict[str, CleanupTarget]] = {kind: {} for kind in CLEANUP_ORDER}
        self._in_flight: set[tuple[ResourceKind, str]] = set()

    def register(self, target: CleanupTarget) -> None:
        with self._lock:
            bucket = self._targets[target.kind]
            if target.resource_id in bucket:
                return
            bucket[target.resource_id] = target
        logger.debug(f"Registered {target.kind.value} {target.name} for cleanup")

    def unregister(self, target: CleanupTarget) -> bool:
        with self._lock:
            return self._targets[target.kind].pop(target.resource_id, None) is not None

    def is_registered(self, kind: ResourceKind, identity: str) -> bool:
        """True if a target of ``kind`` matches ``identity`` (id, id prefix or name)."""
        with self._lock:
            return any(target.matches(identity) for target in self._targets[kind].values())

    def list_by_kind(self, kind: ResourceKind) -> list[CleanupTarget]:
        with self._lock:
            return list(self._targets[kind].values())

    def kinds(self) -> list[ResourceKind]:
        """Kinds that currently have registered targets, in removal order."""
        with self._lock:
            return [kind for kind in CLEANUP_ORDER if self._targets[kind]]

    def count(self) -> int:
        with self._lock:
            return sum(len(bucket) for bucket in self._targets.values())

    def count_by_kind(self, kind: ResourceKind) -> int:
        with self._lock:
            return len(self._targets[kind])

    def clear(self) -> None:
        """Forget every target without removing anything."""
        with self._lock:
            for bucket in self._targets.values():
                bucket.clear()

    def remove(self, target: CleanupTarget) -> None:
        """Remove one target now, if it is still registered.

        Raises:
            CleanupError: the removal failed; the target stays registered.
        """
        errors = self._run_pass(target.kind, lambda t: t is target, token=None)
        if errors:
            raise errors[0]

    def cleanup_by_kind(self, kind: ResourceKind, token: CancellationToken | None = None) -> None:
        errors = self._run_pass(kind, lambda t: True, token)
        if errors:
            raise CleanupFailures(errors)

    def cleanup_all(self, token: CancellationToken | None = None) -> None:
        """Remove everything, containers first, then networks and the rest.

        Raises:
            CleanupFailures: one or more removals failed (all were attempted).
        """
        self._cleanup(lambda t: True, token)

    def cleanup_suite(self, suite: str, token: CancellationToken | None = None) -> None:
        """Remove only what ``suite`` registered, in the same order."""
        self._cleanup(lambda t: t.suite == suite, token)

    def _cleanup(self, predicate: Callable[[CleanupTarget], bool], token: CancellationToken | None) -> None:
        errors: list[CleanupError] = []
        for kind in CLEANUP_ORDER:
            errors.extend(self._run_pass(kind, predicate, token))
        if errors:
            raise CleanupFailures(errors)

    def _run_pass(
        self,
        kind: ResourceKind,
        predicate: Callable[[CleanupTarget], bool],
        token: CancellationToken | None,
    ) -> list[CleanupError]:
        with self._lock:
            claimed = [
                target
                for target in self._targets[kind].values()
                if predicate(target) and target.key not in self._in_flight
            ]
            self._in_flight.update(target.key for target in claimed)

        errors: list[CleanupError] = []
        try:
            for target in claimed:
                if token is not None and token.cancelled:
                    errors.append(
                        CleanupError(
                            kind.value,
                            target.name,
                            cause=OperationCancelledError(token.reason or "cleanup cancelled"),
                        )
                    )
                    continue
                try:
                    target.cleanup()
                except Exception as e:
                    logger.warning(f"Failed to cleanup {kind.value} {target.name}: {e}")
                    errors.append(CleanupError(kind.value, target.name, cause=e))
                    continue
                with self._lock:
                    self._targets[kind].pop(target.resource_id, None)
                logger.debug(f"Cleaned up {kind.value} {target.name}")
        finally:
            with self._lock:
                self._in_flight.difference_update(target.key for target in claimed)
        return errors
