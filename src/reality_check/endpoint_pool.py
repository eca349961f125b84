from __future__ import annotations

import threading
from typing import Iterable, List


class EndpointPool:
    """
    Round-robin rotation over interchangeable search endpoints.

    The cursor is owned by the pool and advanced under a lock, so two callers
    never observe the same position even when a port runs the gateway from
    several threads.
    """

    def __init__(self, endpoints: Iterable[str]) -> None:
        self._endpoints: List[str] = [e.strip().rstrip("/") for e in endpoints if e and e.strip()]
        if not self._endpoints:
            raise ValueError("EndpointPool needs at least one endpoint")
        self._cursor = 0
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._endpoints)

    @property
    def endpoints(self) -> List[str]:
        return list(self._endpoints)

    def next(self) -> str:
        with self._lock:
            endpoint = self._endpoints[self._cursor]
            self._cursor = (self._cursor + 1) % len(self._endpoints)
            return endpoint

    def rotation(self) -> List[str]:
        """Every endpoint once, starting at the cursor. The cursor moves by one."""
        with self._lock:
            start = self._cursor
            self._cursor = (self._cursor + 1) % len(self._endpoints)
            return self._endpoints[start:] + self._endpoints[:start]

    def reset(self) -> None:
        with self._lock:
            self._cursor = 0
