"""Periodic and delayed task scheduling on background threads."""

import threading
from typing import Callable, Optional

from utils.logger import get_logger

logger = get_logger(__name__)


class ScheduledTask:
    """
    A callback running on its own daemon thread, every ``interval`` seconds
    or once after it.

    cancel() may be called any number of times, from any thread, including
    from inside the callback.
    """

    def __init__(
        self,
        interval: float,
        callback: Callable[[], None],
        name: str = "task",
        repeat: bool = True
    ):
        self.interval = interval
        self.callback = callback
        self.name = name
        self.repeat = repeat
        self._cancelled = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> "ScheduledTask":
        self._thread = threading.Thread(target=self._run, name=f"trailzap-{self.name}", daemon=True)
        self._thread.start()
        return self

    def _run(self):
        # wait() returns True as soon as cancel() sets the event
        while not self._cancelled.wait(self.interval):
            try:
                self.callback()
            except Exception as e:
                logger.error(f"Scheduled task '{self.name}' failed: {e}", exc_info=True)
            if not self.repeat:
                break

    def cancel(self):
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()


class Scheduler:
    """Factory for scheduled tasks; swapped for a manual clock in tests."""

    def call_every(self, interval: float, callback: Callable[[], None], name: str = "periodic") -> ScheduledTask:
        """Run callback every ``interval`` seconds until cancelled."""
        return ScheduledTask(interval, callback, name=name, repeat=True).start()

    def call_later(self, delay: float, callback: Callable[[], None], name: str = "delayed") -> ScheduledTask:
        """Run callback once after ``delay`` seconds unless cancelled first."""
        return ScheduledTask(delay, callback, name=name, repeat=False).start()
