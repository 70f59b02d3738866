"""Bounded, thread-safe buffer of recent inference-server output lines."""

from __future__ import annotations

import threading
from collections import deque


class LogBuffer:
    """FIFO of the most recent *capacity* lines; the oldest are evicted first.

    The stdout and stderr readers append concurrently, so every access
    goes through one lock.  Lines from the two streams may interleave, but
    each stream keeps its own order.
    """

    def __init__(self, capacity: int = 1000) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._lines: deque[str] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._lines.maxlen or 0

    def append(self, line: str) -> None:
        with self._lock:
            self._lines.append(line)

    def snapshot(self) -> list[str]:
        """Return a copy of the buffered lines, oldest first."""
        with self._lock:
            return list(self._lines)

    def clear(self) -> None:
        with self._lock:
            self._lines.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._lines)
