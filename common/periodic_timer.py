"""
Periodic callback timer running on its own daemon thread.

Used for the CRI keepalive and state requests and for the position send
cycle. The callback runs on the timer thread; exceptions are logged and the
timer keeps running.
"""

import logging
import threading
import time
from typing import Callable, Optional

from .constants import THREAD_JOIN_TIMEOUT_S

logger = logging.getLogger(__name__)


class PeriodicTimer:
    """Calls a function every `interval` seconds until stopped"""

    def __init__(self, interval: float, callback: Callable[[], None], name: str = "timer"):
        self.interval = interval
        self.callback = callback
        self.name = name

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    def start(self):
        """Start firing. A running timer is left untouched."""
        with self._lock:
            if self._thread and self._thread.is_alive():
                return
            self._stop_event = threading.Event()
            self._thread = threading.Thread(
                target=self._run, args=(self._stop_event,), name=self.name, daemon=True
            )
            self._thread.start()

    def stop(self):
        """Stop firing. Safe to call from the callback itself."""
        with self._lock:
            self._stop_event.set()
            thread = self._thread
            self._thread = None

        if thread and thread is not threading.current_thread():
            thread.join(timeout=THREAD_JOIN_TIMEOUT_S)

    def is_running(self) -> bool:
        with self._lock:
            return self._thread is not None and self._thread.is_alive()

    def _run(self, stop_event: threading.Event):
        # Fixed-rate schedule: a slow callback does not shift later ticks
        next_tick = time.monotonic() + self.interval
        while not stop_event.wait(max(0.0, next_tick - time.monotonic())):
            try:
                self.callback()
            except Exception as e:
                logger.error(f"{self.name}: callback error: {e}")
            next_tick += self.interval
            now = time.monotonic()
            if next_tick < now:
                # Fell behind by more than a period; skip missed ticks
                next_tick = now + self.interval
