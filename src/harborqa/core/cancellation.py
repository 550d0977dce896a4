"""Cancellation tokens and two-stage signal shutdown."""

from __future__ import annotations

import logging
import os
import signal
import threading
import time
from collections.abc import Callable
from typing import Any

from harborqa.errors.base import OperationCancelledError

logger = logging.getLogger(__name__)

FORCE_QUIT_EXIT_CODE = 130


class CancellationToken:
    """A cancellable, optionally deadline-bearing signal shared by blocking calls.

    Child tokens are cancelled together with their parent but carry their
    own deadline, so a per-unit startup timeout never cancels the run.

    Example:
        >>> root = CancellationToken()
        >>> startup = root.child(timeout=30)
        >>> while not startup.wait(1.0):
        ...     if check():
        ...         break
    """

    def __init__(self, timeout: float | None = None, parent: CancellationToken | None = None) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._children: list[CancellationToken] = []
        self._parent = parent
        self._reason: str | None = None
        self.deadline: float | None = time.monotonic() + timeout if timeout is not None else None

        if parent is not None:
            parent._adopt(self)

    def _adopt(self, child: CancellationToken) -> None:
        with self._lock:
            if self._event.is_set():
                child._set(self._reason)
            else:
                self._children.append(child)

    def _set(self, reason: str | None) -> None:
        with self._lock:
            if self._event.is_set():
                return
            self._reason = reason
            self._event.set()
            children = list(self._children)
            self._children.clear()
        for child in children:
            child._set(reason)

    def cancel(self, reason: str = "cancelled") -> None:
        """Cancel this token and every child token."""
        logger.debug(f"Cancellation requested: {reason}")
        self._set(reason)

    @property
    def cancelled(self) -> bool:
        """True once cancelled explicitly, through the parent, or by deadline."""
        if self._event.is_set():
            return True
        return self.deadline_exceeded

    @property
    def deadline_exceeded(self) -> bool:
        """True if this token's own deadline has passed."""
        return self.deadline is not None and time.monotonic() >= self.deadline

    @property
    def interrupted(self) -> bool:
        """True if cancelled explicitly (not merely timed out)."""
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        if self._event.is_set():
            return self._reason
        if self.deadline_exceeded:
            return "deadline exceeded"
        return None

    def remaining(self) -> float | None:
        """Seconds until the deadline, or None if the token has none."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def wait(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; return True if the token is cancelled."""
        remaining = self.remaining()
        if remaining is not None:
            seconds = min(seconds, remaining)
        self._event.wait(max(0.0, seconds))
        return self.cancelled

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise OperationCancelledError(self.reason or "cancelled")

    def close(self) -> None:
        """Detach from the parent. A closed token is no longer cancelled with it."""
        parent, self._parent = self._parent, None
        if parent is None:
            return
        with parent._lock:
            if self in parent._children:
                parent._children.remove(self)

    def child(self, timeout: float | None = None) -> CancellationToken:
        """Create a token cancelled with this one, with its own deadline."""
        child = CancellationToken(timeout=timeout, parent=self)
        if self.deadline is not None and (child.deadline is None or self.deadline < child.deadline):
            child.deadline = self.deadline
        return child


class ShutdownController:
    """First SIGINT/SIGTERM cancels gracefully; the second forces exit.

    Args:
        token: Root token cancelled on the first signal.
        notify: Callable used to print user-facing notices.
        exit_func: Called with exit code 130 on the second signal.
    """

    def __init__(
        self,
        token: CancellationToken,
        notify: Callable[[str], Any] | None = None,
        exit_func: Callable[[int], Any] = os._exit,
    ) -> None:
        self.token = token
        self.notify = notify or (lambda msg: logger.warning(msg))
        self.exit_func = exit_func
        self.signals_received = 0
        self._previous: dict[int, Any] = {}

    def install(self, signals: tuple[int, ...] = (signal.SIGINT, signal.SIGTERM)) -> None:
        for signum in signals:
            self._previous[signum] = signal.getsignal(signum)
            signal.signal(signum, self.handle)

    def restore(self) -> None:
        for signum, handler in self._previous.items():
            signal.signal(signum, handler)
        self._previous.clear()

    def handle(self, signum: int, frame: Any = None) -> None:
        self.signals_received += 1

        if self.signals_received == 1:
            self.notify(
                "Received interrupt, gracefully shutting down and cleaning up... "
                "(press Ctrl+C again to force quit)"
            )
            self.token.cancel(f"signal {signum}")
            return

        self.notify("Force quit - Docker resources may be left behind")
        self.notify("Run 'harborqa cleanup --force' to remove leftover containers and networks")
        self.exit_func(FORCE_QUIT_EXIT_CODE)
