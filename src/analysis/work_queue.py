"""Bounded work queue drained by a fixed pool of worker threads."""

from __future__ import annotations

import logging
import queue
import threading
from typing import Callable, Generic, List, Optional, TypeVar

from constants import Constants

logger = logging.getLogger(__name__)

T = TypeVar("T")

_STOP = object()


class WorkQueue(Generic[T]):
    """Fixed-size worker pool consuming a bounded FIFO queue.

    ``add`` blocks while the queue is at capacity, up to an optional timeout.
    ``wait`` blocks until every item added so far has been handled. A handler
    exception is logged and the item still counts as processed, so one bad
    item never stalls ``wait``.

    Args:
        capacity: Maximum number of queued, not yet claimed, items.
        workers: Number of worker threads.
        handler: Called once per item from a worker thread.
    """

    def __init__(
        self,
        handler: Callable[[T], object],
        capacity: int = Constants.ANALYSIS_QUEUE_CAPACITY,
        workers: int = Constants.ANALYSIS_WORKERS,
        name: str = "work",
    ):
        if capacity < 1 or workers < 1:
            raise ValueError("capacity and workers must be positive")
        self._handler = handler
        self._queue: "queue.Queue[object]" = queue.Queue(maxsize=capacity)
        self._workers = workers
        self._name = name
        self._threads: List[threading.Thread] = []
        self._pending = 0
        self._cond = threading.Condition()
        self._started = False

    @property
    def pending(self) -> int:
        with self._cond:
            return self._pending

    def start(self) -> None:
        """Launch the worker threads; calling twice is a no-op."""
        if self._started:
            return
        self._started = True
        for i in range(self._workers):
            t = threading.Thread(target=self._run, name=f"{self._name}-{i}", daemon=True)
            t.start()
            self._threads.append(t)

    def add(self, item: T, timeout: Optional[float] = None) -> bool:
        """Queue ``item``, blocking while the queue is full.

        Returns False, without queuing the item, if no slot frees up within
        ``timeout`` seconds.
        """
        if not self._started:
            raise RuntimeError("work queue not started")
        with self._cond:
            self._pending += 1
        try:
            self._queue.put(item, timeout=timeout)
        except queue.Full:
            self._done()
            return False
        return True

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until all added items are processed; False on timeout."""
        with self._cond:
            return self._cond.wait_for(lambda: self._pending == 0, timeout=timeout)

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        """Signal workers to exit once the queue drains and join them."""
        if not self._started:
            return
        for _ in self._threads:
            self._queue.put(_STOP)
        for t in self._threads:
            t.join(timeout=timeout)
        self._threads = []
        self._started = False

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            if item is _STOP:
                return
            try:
                self._handler(item)  # type: ignore[arg-type]
            except Exception:  # pylint: disable=broad-exception-caught
                logger.exception("%s worker failed on %r", self._name, item)
            finally:
                self._done()

    def _done(self) -> None:
        with self._cond:
            self._pending -= 1
            if self._pending == 0:
                self._cond.notify_all()
