"""Debounced persistence writes."""

import logging
from collections.abc import Callable
from threading import Lock, Timer
from typing import Any

from cycling_motivator.storage import StorageError

logger = logging.getLogger(__name__)

DEFAULT_DELAY = 1.0  # seconds


class DebouncedWriter:
    """Single-slot pending-write scheduler.

    Each schedule() replaces the pending snapshot and restarts the delay, so
    a burst of changes produces one write of the latest state. Writes are
    serialized: at most one is in flight. Storage failures are logged and
    dropped; the caller keeps its in-memory state.
    """

    def __init__(self, write: Callable[[Any], None], delay: float = DEFAULT_DELAY):
        self._write = write
        self.delay = delay
        self._lock = Lock()
        self._write_lock = Lock()
        self._pending: Any = None
        self._timer: Timer | None = None
        self._closed = False
        self.writes = 0
        self.failures = 0

    @property
    def has_pending(self) -> bool:
        with self._lock:
            return self._pending is not None

    def schedule(self, snapshot: Any) -> None:
        """Replace the pending snapshot and restart the delay timer."""
        with self._lock:
            if self._closed:
                logger.debug("Ignoring snapshot for a cancelled writer")
                return
            self._pending = snapshot
            if self._timer is not None:
                self._timer.cancel()
            self._timer = Timer(self.delay, self._fire)
            self._timer.daemon = True
            self._timer.start()

    def flush(self) -> None:
        """Write the pending snapshot now, if any."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
        self._fire()

    def cancel(self) -> None:
        """Drop the pending snapshot and stop accepting new ones.

        Waits for a write already in flight, so nothing from this writer
        reaches the store after cancel() returns.
        """
        with self._write_lock:
            with self._lock:
                self._closed = True
                if self._timer is not None:
                    self._timer.cancel()
                    self._timer = None
                self._pending = None

    def _fire(self) -> None:
        with self._write_lock:
            with self._lock:
                snapshot, self._pending = self._pending, None
                self._timer = None
            if snapshot is None:
                return
            try:
                self._write(snapshot)
                self.writes += 1
            except StorageError as e:
                self.failures += 1
                logger.warning("Failed to persist state: %s", e)
