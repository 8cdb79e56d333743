"""Timer registry: which tasks currently have a live timer.

The registry is process-local and never persisted. It is rebuilt from the
task store by recovery on startup.
"""

import asyncio
import logging
import threading
from datetime import datetime
from typing import Protocol

logger = logging.getLogger(__name__)


class TimerHandle(Protocol):
    """A cancellable one-shot timer."""

    task_id: str
    fire_at: datetime

    def cancel(self) -> None: ...


class Timer:
    """One-shot timer backed by an asyncio task."""

    def __init__(self, task_id: str, fire_at: datetime) -> None:
        self.task_id = task_id
        self.fire_at = fire_at
        # Set once delivery has started; from then on cancel() is a no-op
        self.firing = False
        self.cancelled = False
        self._runner: asyncio.Task[None] | None = None

    def bind(self, runner: "asyncio.Task[None]") -> None:
        self._runner = runner

    @property
    def runner(self) -> "asyncio.Task[None] | None":
        return self._runner

    @property
    def done(self) -> bool:
        return self._runner is not None and self._runner.done()

    def cancel(self) -> None:
        if self.firing or self.cancelled:
            return
        self.cancelled = True
        if self._runner is not None and not self._runner.done():
            self._runner.cancel()

    def __repr__(self) -> str:
        return f"Timer(task_id={self.task_id!r}, fire_at={self.fire_at.isoformat()})"


class TimerRegistry:
    """Maps task id to its live timer handle.

    All operations take a short lock and never block on I/O. Timers are
    armed on the event loop, but counts and ids are also read from other
    threads, such as a sync test client driving the app through a portal.
    """

    def __init__(self) -> None:
        self._timers: dict[str, TimerHandle] = {}
        self._lock = threading.Lock()

    def set(self, task_id: str, handle: TimerHandle) -> None:
        """Register `handle`, cancelling any timer it replaces."""
        with self._lock:
            previous = self._timers.get(task_id)
            self._timers[task_id] = handle
        if previous is not None and previous is not handle:
            previous.cancel()
            logger.debug("timer_replaced", extra={"task.id": task_id})

    def get(self, task_id: str) -> TimerHandle | None:
        with self._lock:
            return self._timers.get(task_id)

    def remove(self, task_id: str) -> bool:
        """Cancel and forget the timer for `task_id`. Returns False if none."""
        with self._lock:
            handle = self._timers.pop(task_id, None)
        if handle is None:
            return False
        handle.cancel()
        return True

    def owns(self, task_id: str, handle: TimerHandle) -> bool:
        """True if `handle` is still the registered timer for `task_id`."""
        with self._lock:
            return self._timers.get(task_id) is handle

    def remove_if(self, task_id: str, handle: TimerHandle) -> bool:
        """Remove the entry only if it is still `handle` (compare-and-remove)."""
        with self._lock:
            if self._timers.get(task_id) is not handle:
                return False
            del self._timers[task_id]
            return True

    def clear(self) -> int:
        """Cancel every timer. Returns how many were live."""
        with self._lock:
            handles = list(self._timers.values())
            self._timers.clear()
        for handle in handles:
            handle.cancel()
        return len(handles)

    def ids(self) -> list[str]:
        with self._lock:
            return list(self._timers)

    def __len__(self) -> int:
        with self._lock:
            return len(self._timers)

    def __contains__(self, task_id: object) -> bool:
        with self._lock:
            return task_id in self._timers
