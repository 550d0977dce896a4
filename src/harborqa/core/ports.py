"""Host port allocation for concurrently starting units."""

from __future__ import annotations

import logging
import socket
import threading

logger = logging.getLogger(__name__)

_MAX_ATTEMPTS = 100


class PortAllocator:
    """Hands out free host ports, never the same one twice while leased.

    The OS picks a free port by binding to port 0; the allocator remembers
    what it has handed out so two units starting at the same time never
    receive the same port even if neither has bound it yet.
    """

    def __init__(self, host: str = "127.0.0.1") -> None:
        self.host = host
        self._leased: set[int] = set()
        self._lock = threading.Lock()

    def allocate(self) -> int:
        with self._lock:
            for _ in range(_MAX_ATTEMPTS):
                port = self._free_port()
                if port not in self._leased:
                    self._leased.add(port)
                    logger.debug(f"Allocated host port {port}")
                    return port
        raise RuntimeError(f"could not find a free port after {_MAX_ATTEMPTS} attempts")

    def release(self, port: int) -> None:
        with self._lock:
            self._leased.discard(port)

    def reserved(self) -> list[int]:
        with self._lock:
            return sorted(self._leased)

    def _free_port(self) -> int:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            sock.bind((self.host, 0))
            return sock.getsockname()[1]


_allocator: PortAllocator | None = None
_allocator_lock = threading.Lock()


def get_port_allocator() -> PortAllocator:
    """Return the process-wide port allocator."""
    global _allocator
    with _allocator_lock:
        if _allocator is None:
            _allocator = PortAllocator()
        return _allocator
