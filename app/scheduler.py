"""Fixed-interval background timers."""

import logging
import threading
from typing import Callable

log = logging.getLogger("scheduler")


class PeriodicTimer:
    """Calls ``function`` every ``interval`` seconds on its own thread.

    Can be stopped and started again. Errors raised by ``function`` are
    logged and never end the timer.
    """

    def __init__(self, interval: float, function: Callable[[], None], name: str = "timer"):
        if interval <= 0:
            raise ValueError("interval must be > 0")
        self.interval = interval
        self.function = function
        self.name = name
        self._lock = threading.Lock()
        self._stop: threading.Event | None = None
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        with self._lock:
            return self._stop is not None and not self._stop.is_set()

    def start(self) -> None:
        with self._lock:
            if self._stop is not None and not self._stop.is_set():
                return
            self._stop = threading.Event()
            self._thread = threading.Thread(
                target=self._run, args=(self._stop,), daemon=True, name=self.name
            )
            self._thread.start()

    def stop(self, timeout: float = 2.0) -> None:
        """Stop the timer; waits for a callback in flight unless called from it."""
        with self._lock:
            stop, thread = self._stop, self._thread
            if stop is None:
                return
            stop.set()
            self._stop = None
            self._thread = None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=timeout)

    def _run(self, stop: threading.Event):
        while not stop.wait(self.interval):
            try:
                self.function()
            except Exception:
                # Don't re-raise - the timer must keep going
                log.exception("Error in %s callback", self.name)
