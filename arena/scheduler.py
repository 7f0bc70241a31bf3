"""Deferred, cancellable tasks keyed by game id.

Engine replies and clock ticks are scheduled here rather than on bare
timers. Each key holds at most one pending task; scheduling again for
the key replaces it, and a task that fires after being replaced or
cancelled is dropped because its token no longer matches.

In ``autorun`` mode tasks run on ``threading.Timer`` threads. With
``autorun=False`` they queue until ``run_pending()`` is called, which
gives tests and step-by-step drivers full control over timing.
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


@dataclass
class ScheduledTask:
    key: str
    delay: float
    callback: Callable[[], None]
    token: str = field(default_factory=lambda: uuid.uuid4().hex)
    timer: threading.Timer | None = None


class ReplyScheduler:
    """One pending task per key, with token-checked firing."""

    def __init__(self, autorun: bool = True) -> None:
        self._autorun = autorun
        self._lock = threading.Lock()
        self._tasks: dict[str, ScheduledTask] = {}

    @property
    def autorun(self) -> bool:
        return self._autorun

    def schedule(self, key: str, delay: float, callback: Callable[[], None]) -> str:
        """Schedule ``callback`` after ``delay`` seconds under ``key``.

        Any task already pending for ``key`` is cancelled.

        Returns:
            The token of the new task.
        """
        task = ScheduledTask(key=key, delay=delay, callback=callback)
        with self._lock:
            previous = self._tasks.pop(key, None)
            if previous is not None and previous.timer is not None:
                previous.timer.cancel()
            if self._autorun:
                task.timer = threading.Timer(delay, self._fire, args=(key, task.token))
                task.timer.daemon = True
            self._tasks[key] = task
        if task.timer is not None:
            task.timer.start()
        return task.token

    def cancel(self, key: str) -> bool:
        """Cancel the task pending under ``key``. Returns True if one existed."""
        with self._lock:
            task = self._tasks.pop(key, None)
        if task is None:
            return False
        if task.timer is not None:
            task.timer.cancel()
        logger.debug("Cancelled task %s", key)
        return True

    def cancel_all(self) -> None:
        with self._lock:
            tasks = list(self._tasks.values())
            self._tasks.clear()
        for task in tasks:
            if task.timer is not None:
                task.timer.cancel()

    def is_pending(self, key: str) -> bool:
        with self._lock:
            return key in self._tasks

    def pending_keys(self) -> list[str]:
        with self._lock:
            return list(self._tasks)

    def run_pending(self) -> int:
        """Run every task queued at call time, shortest delay first.

        Tasks scheduled by those callbacks stay queued for the next call.

        Returns:
            Number of callbacks executed.
        """
        with self._lock:
            queued = sorted(self._tasks.values(), key=lambda t: t.delay)
        ran = 0
        for task in queued:
            if self._fire(task.key, task.token):
                ran += 1
        return ran

    def _fire(self, key: str, token: str) -> bool:
        with self._lock:
            task = self._tasks.get(key)
            if task is None or task.token != token:
                logger.debug("Dropped stale task %s", key)
                return False
            del self._tasks[key]
        task.callback()
        return True
