"""Publish/subscribe event bus with a single dispatch thread.

Producers (units, tests, runners) call ``publish`` and never block. One
dispatch thread drains the queue and hands every event to each consumer
in registration order, then to the results accumulator.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from typing import Protocol, runtime_checkable

from harborqa.core.events import Event
from harborqa.core.results import ResultsAccumulator

logger = logging.getLogger(__name__)

SLOW_CONSUMER_THRESHOLD = 0.5


@runtime_checkable
class Consumer(Protocol):
    """A report consumer attached to the bus."""

    def handle(self, event: Event) -> None: ...

    def close(self) -> None: ...


class _FlushToken:
    def __init__(self) -> None:
        self.done = threading.Event()


_CLOSE = object()


class BusClosedError(RuntimeError):
    """Raised when publishing to a closed bus."""


class EventBus:
    """Unbounded event queue fanned out to an ordered list of consumers."""

    def __init__(self, accumulator: ResultsAccumulator | None = None) -> None:
        self.accumulator = accumulator or ResultsAccumulator()
        self._queue: queue.Queue[object] = queue.Queue()
        self._consumers: list[Consumer] = []
        self._lock = threading.Lock()
        self._thread: threading.Thread | None = None
        self._closed = False

    @property
    def consumers(self) -> list[Consumer]:
        with self._lock:
            return list(self._consumers)

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(self, consumer: Consumer) -> None:
        with self._lock:
            if self._closed:
                raise BusClosedError("cannot subscribe to a closed event bus")
            self._consumers.append(consumer)

    def publish(self, event: Event) -> None:
        if self._closed:
            raise BusClosedError(f"event bus is closed, dropped {event.type.value}")
        self._queue.put(event)

    def start(self) -> None:
        with self._lock:
            if self._thread is not None:
                return
            self._thread = threading.Thread(target=self._loop, name="harborqa-event-bus", daemon=True)
            self._thread.start()

    def flush(self, timeout: float | None = None) -> bool:
        """Wait until every event published so far has been dispatched."""
        if self._thread is None or self._closed:
            return False
        token = _FlushToken()
        self._queue.put(token)
        return token.done.wait(timeout)

    def close(self, timeout: float | None = None) -> None:
        """Drain remaining events, stop the dispatch thread, close consumers."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            thread = self._thread

        self._queue.put(_CLOSE)
        if thread is not None:
            thread.join(timeout)
            if thread.is_alive():
                logger.warning("Event bus did not drain before timeout")
        else:
            self._loop()

        for consumer in self.consumers:
            try:
                consumer.close()
            except Exception:
                logger.exception(f"Consumer {type(consumer).__name__} failed to close")

    def _loop(self) -> None:
        while True:
            item = self._queue.get()
            if item is _CLOSE:
                break
            if isinstance(item, _FlushToken):
                item.done.set()
                continue
            self._dispatch(item)  # type: ignore[arg-type]

    def _dispatch(self, event: Event) -> None:
        for consumer in self.consumers:
            started = time.monotonic()
            try:
                consumer.handle(event)
            except Exception:
                logger.exception(f"Consumer {type(consumer).__name__} failed on {event.type.value}")
            elapsed = time.monotonic() - started
            if elapsed > SLOW_CONSUMER_THRESHOLD:
                logger.debug(f"Consumer {type(consumer).__name__} took {elapsed:.2f}s on {event.type.value}")
        self.accumulator.handle(event)

    def __enter__(self) -> EventBus:
        self.start()
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()
