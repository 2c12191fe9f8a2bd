"""
Coalescing and periodic scheduling
==================================

- ``Debouncer``: any number of rapid ``trigger()`` calls collapse into a
  single callback run once the quiet period has elapsed. There is at most
  one pending timer, and the callback never overlaps itself.
- ``PeriodicTask``: background thread running a callback at a fixed
  interval until stopped (the persistence sweep).
"""

from __future__ import annotations

import threading
from typing import Callable, Optional

from .logging_utils import get_logger

log = get_logger("scheduler")


class Debouncer:
    """Run ``callback`` once after ``delay`` seconds without new triggers."""

    def __init__(self, delay: float, callback: Callable[[], None], name: str = "debounce"):
        if delay < 0:
            raise ValueError("debounce delay must be >= 0")
        self.delay = delay
        self.callback = callback
        self.name = name
        self._timer: Optional[threading.Timer] = None
        self._generation = 0
        self._lock = threading.Lock()
        self._run_lock = threading.Lock()

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._timer is not None

    def trigger(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._generation += 1
            timer = threading.Timer(self.delay, self._fire, args=(self._generation,))
            timer.daemon = True
            timer.name = f"{self.name}-timer"
            self._timer = timer
            timer.start()

    def cancel(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self._generation += 1

    def flush(self) -> bool:
        """Run a pending callback immediately. Returns True if one was pending."""
        with self._lock:
            if self._timer is None:
                return False
            self._timer.cancel()
            self._timer = None
            self._generation += 1
        self._run()
        return True

    def _fire(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation:
                return  # superseded by a later trigger
            self._timer = None
        self._run()

    def _run(self) -> None:
        with self._run_lock:
            try:
                self.callback()
            except Exception as e:
                log.error(
                    "debounced_callback_error name=%s err=%s",
                    self.name,
                    e.__class__.__name__,
                    exc_info=True,
                )


class PeriodicTask:
    """Call ``callback`` every ``interval`` seconds on a daemon thread."""

    def __init__(self, interval: float, callback: Callable[[], None], name: str = "periodic"):
        if interval <= 0:
            raise ValueError("interval must be > 0")
        self.interval = interval
        self.callback = callback
        self.name = name
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            log.warning("periodic_task_already_running name=%s", self.name)
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name=self.name, daemon=True)
        self._thread.start()
        log.info("periodic_task_started name=%s interval=%.1fs", self.name, self.interval)

    def stop(self, timeout: float = 5.0) -> None:
        if self._thread is None:
            return
        self._stop.set()
        self._thread.join(timeout=timeout)
        if self._thread.is_alive():
            log.warning("periodic_task_did_not_stop name=%s", self.name)
        self._thread = None
        log.info("periodic_task_stopped name=%s", self.name)

    def _loop(self) -> None:
        while not self._stop.wait(self.interval):
            try:
                self.callback()
            except Exception as e:
                log.error(
                    "periodic_task_error name=%s err=%s",
                    self.name,
                    e.__class__.__name__,
                    exc_info=True,
                )
