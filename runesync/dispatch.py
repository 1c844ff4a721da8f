"""
RuneSync - Dispatch Loop

All orchestration state belongs to the host's single-threaded dispatch loop.
Anything that happens on another thread (HTTP completion, the wall-clock
timer) must hand its work to :meth:`Dispatcher.invoke_later` instead of
touching that state directly.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from typing import Callable, Optional, Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@runtime_checkable
class Dispatcher(Protocol):
    def invoke_later(self, callback: Callable[[], None]) -> None:
        """Queue a callback to run on the dispatch loop."""
        ...


class QueueDispatcher:
    """
    Thread-safe callback queue, drained by the thread that owns the loop.

    The embedding host calls :meth:`drain` once per tick; callbacks queued
    while draining run on the next drain, never recursively.
    """

    def __init__(self) -> None:
        self._queue: "queue.SimpleQueue[Callable[[], None]]" = queue.SimpleQueue()

    def invoke_later(self, callback: Callable[[], None]) -> None:
        self._queue.put(callback)

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def drain(self) -> int:
        """Run everything queued so far. Returns how many callbacks ran."""
        budget = self._queue.qsize()
        ran = 0
        while ran < budget:
            try:
                callback = self._queue.get_nowait()
            except queue.Empty:
                break
            ran += 1
            try:
                callback()
            except Exception:
                logger.exception("Dispatched callback failed")
        return ran


class IntervalTimer:
    """
    Wall-clock timer running on a daemon thread.

    Every ``interval`` seconds it posts ``callback`` to the dispatcher; the
    callback itself always executes on the dispatch loop.
    """

    def __init__(
        self,
        interval: float,
        callback: Callable[[], None],
        dispatcher: Dispatcher,
        name: str = "runesync-wallclock",
    ):
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.interval = interval
        self._callback = callback
        self._dispatcher = dispatcher
        self._name = name
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_running:
            logger.warning("Timer %s is already running", self._name)
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name=self._name, daemon=True)
        self._thread.start()
        logger.debug("Started %s every %.1fs", self._name, self.interval)

    def stop(self, timeout: Optional[float] = 2.0) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.debug("Stopped %s", self._name)

    def _run(self) -> None:
        next_fire = time.monotonic() + self.interval
        while not self._stop_event.wait(max(0.0, next_fire - time.monotonic())):
            self._dispatcher.invoke_later(self._callback)
            next_fire += self.interval
