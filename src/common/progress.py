"""Thread-safe progress counters shared with an external UI collaborator."""

from __future__ import annotations

import threading
from typing import Callable, List

ProgressCallback = Callable[[str, int, int], None]


class ProgressCounter:
    """Counter incremented concurrently by fetch tasks and analysis workers.

    Callbacks receive ``(label, done, total)`` and run while the lock is held,
    so they must be quick and must not touch the counter themselves.
    """

    def __init__(self, label: str, total: int = 0):
        self.label = label
        self._lock = threading.Lock()
        self._done = 0
        self._total = total
        self._callbacks: List[ProgressCallback] = []

    def register_callback(self, callback: ProgressCallback) -> None:
        """Register a callback for progress updates."""
        with self._lock:
            self._callbacks.append(callback)

    def increment(self, n: int = 1) -> int:
        """Add ``n`` completed units and return the new count."""
        with self._lock:
            self._done += n
            self._notify()
            return self._done

    def add_total(self, n: int) -> None:
        """Grow the expected total, e.g. once a flattened list is known."""
        with self._lock:
            self._total += n
            self._notify()

    def reset(self, label: str = "", total: int = 0) -> None:
        with self._lock:
            if label:
                self.label = label
            self._done = 0
            self._total = total

    @property
    def value(self) -> int:
        with self._lock:
            return self._done

    @property
    def total(self) -> int:
        with self._lock:
            return self._total

    def _notify(self) -> None:
        for callback in self._callbacks:
            callback(self.label, self._done, self._total)
