"""
Background removal of expired pending requests.
"""

import logging
import threading
from typing import Callable, Optional

import pendulum
from pendulum import DateTime

logger = logging.getLogger(__name__)

DEFAULT_PURGE_INTERVAL_SECONDS = 5 * 60


class PendingRequestPurger:
    """
    Periodically calls ``store.purge_expired`` on a daemon thread.

    Constructed once at process start and stopped on shutdown; usable as a
    context manager. The thread only touches the store through
    ``purge_expired``, so request handling is never blocked for longer than
    one purge pass.
    """

    def __init__(
        self,
        store,
        ttl_minutes: int,
        interval_seconds: float = DEFAULT_PURGE_INTERVAL_SECONDS,
        clock: Callable[[], DateTime] = lambda: pendulum.now("UTC"),
    ):
        self.store = store
        self.ttl_minutes = ttl_minutes
        self.interval_seconds = interval_seconds
        self.clock = clock
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> "PendingRequestPurger":
        if self._thread is not None and self._thread.is_alive():
            return self
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._run, name="pending-request-purger", daemon=True
        )
        self._thread.start()
        return self

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def purge_once(self) -> int:
        """Run a single purge pass now."""
        removed = self.store.purge_expired(self.clock(), self.ttl_minutes)
        if removed:
            logger.info("Purged %d expired pending request(s)", removed)
        return removed

    def _run(self) -> None:
        while not self._stop.wait(self.interval_seconds):
            try:
                self.purge_once()
            except Exception:
                # Keep the thread alive; the next pass retries
                logger.exception("Purging expired pending requests failed")

    def __enter__(self) -> "PendingRequestPurger":
        return self.start()

    def __exit__(self, *exc_info) -> None:
        self.stop()
