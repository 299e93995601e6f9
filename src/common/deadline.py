"""Per-root scan deadline shared by every fetch task and analysis worker."""

from __future__ import annotations

import threading
import time
from typing import Optional

from common.errors import CancellationError


class Deadline:
    """A monotonic deadline that can also be cancelled explicitly.

    Tasks call ``check()`` at their checkpoints and clamp blocking network
    calls to ``remaining()`` so an expired scan never hangs.
    """

    def __init__(self, timeout: float, label: str = ""):
        self.label = label
        self.timeout = timeout
        self._expires_at = time.monotonic() + timeout
        self._cancelled = threading.Event()

    def remaining(self) -> float:
        """Seconds left, never negative."""
        if self._cancelled.is_set():
            return 0.0
        return max(0.0, self._expires_at - time.monotonic())

    def expired(self) -> bool:
        return self._cancelled.is_set() or time.monotonic() >= self._expires_at

    def cancel(self) -> None:
        """Abort every task observing this deadline."""
        self._cancelled.set()

    def clamp(self, timeout: Optional[float]) -> float:
        """Return ``timeout`` reduced to the time left on the deadline."""
        left = self.remaining()
        if timeout is None:
            return left
        return min(timeout, left)

    def check(self) -> None:
        """Raise CancellationError once the deadline has passed."""
        if self.expired():
            raise CancellationError(
                f"scan of {self.label or 'package'} exceeded {self.timeout:g}s deadline"
            )
