"""Release Manager Pipeline - Interval poller.

Each scheduler owns one IntervalPoller: a daemon thread that calls a tick
function every ``interval_seconds`` until stopped. The poller holds its own
running flag and thread handle; there is no module-level worker state.

Stopping only prevents new ticks. A tick that is already running is never
interrupted; stop() waits up to ``timeout`` for it to finish. A poller
restarted while that tick still runs holds its first tick until the old one
returns.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable

logger = logging.getLogger(__name__)


class IntervalPoller:
    """Run ``tick`` every ``interval_seconds`` on a background thread."""

    def __init__(self, name: str, interval_seconds: float, tick: Callable[[], None]):
        self.name = name
        self.interval_seconds = interval_seconds
        self._tick = tick
        self._stop_event: threading.Event | None = None
        self._thread: threading.Thread | None = None
        self._running = False
        self._lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> bool:
        """Start the poll loop.

        Returns:
            False if the poller was already running (nothing is started).
        """
        with self._lock:
            if self._running:
                logger.warning("%s is already running", self.name)
                return False
            # Each run gets its own event so a restart never revives an old loop
            previous = self._thread
            self._stop_event = threading.Event()
            self._thread = threading.Thread(
                target=self._loop,
                args=(self._stop_event, previous),
                daemon=True,
                name=self.name,
            )
            self._running = True
            self._thread.start()
        logger.info("%s started (interval=%ss)", self.name, self.interval_seconds)
        return True

    def stop(self, timeout: float | None = None) -> None:
        """Stop accepting new ticks and wait up to ``timeout`` for the loop to exit."""
        with self._lock:
            if not self._running:
                return
            self._running = False
            self._stop_event.set()
            thread = self._thread

        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=timeout)
            if thread.is_alive():
                logger.warning("%s still finishing an in-flight tick", self.name)
        logger.info("%s stopped", self.name)

    def _loop(self, stop_event: threading.Event, previous: threading.Thread | None) -> None:
        # A tick left running by an earlier stop() must finish first
        if previous is not None:
            previous.join()
        # First tick fires one interval after start
        while not stop_event.wait(timeout=self.interval_seconds):
            try:
                self._tick()
            except Exception:
                logger.exception("%s tick failed", self.name)
