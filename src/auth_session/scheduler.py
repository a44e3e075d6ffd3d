"""Periodic cleanup of expired and revoked refresh tokens.

CleanupScheduler runs RefreshTokenStore.delete_expired_and_revoked() at a
fixed rate on a dedicated daemon thread. It is started and stopped
explicitly by the process that owns it.

Overlap policy:
    At most one sweep runs at a time. A tick that falls due while a sweep is
    still running is skipped, not queued. The same holds for run_once()
    called from another thread while a sweep is in progress.

Failure policy:
    A failing sweep is logged and counted. The next tick runs as usual.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from typing import TYPE_CHECKING, Final

from .logging import get_logger
from .records import utcnow

if TYPE_CHECKING:
    from types import TracebackType

    from .protocols import Clock
    from .refresh_tokens import RefreshTokenStore

logger = get_logger(__name__)

DEFAULT_INTERVAL: Final[float] = 3600.0
"""Default sweep period in seconds (hourly)."""


class CleanupScheduler:
    """Fixed-rate, non-reentrant sweep trigger.

    Thread Safety:
        run_once() may be called from any thread. A non-blocking lock makes
        concurrent calls skip instead of wait.

    Example:
        ```python
        scheduler = CleanupScheduler(store, interval_seconds=3600)
        scheduler.start()
        ...
        scheduler.stop()

        # or
        with CleanupScheduler(store) as scheduler:
            ...
        ```

    Attributes:
        runs: Sweeps that completed successfully.
        skipped: Ticks skipped because a sweep was still running.
        failures: Sweeps that raised.
        last_deleted: Records deleted by the last successful sweep.
    """

    def __init__(
        self,
        store: RefreshTokenStore,
        interval_seconds: float = DEFAULT_INTERVAL,
        *,
        clock: Clock = utcnow,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be positive, got {interval_seconds}")

        self._store = store
        self._interval = interval_seconds
        self._clock = clock
        self._monotonic = monotonic

        self._run_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

        self.runs = 0
        self.skipped = 0
        self.failures = 0
        self.last_deleted: int | None = None

    @property
    def interval_seconds(self) -> float:
        return self._interval

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the trigger thread.

        Raises:
            RuntimeError: If a trigger thread is still alive, either because
                the scheduler is running or because an earlier stop() timed
                out before the thread finished.
        """
        with self._state_lock:
            if self._thread is not None and self._thread.is_alive():
                raise RuntimeError("CleanupScheduler already started")
            self._stop.clear()
            self._thread = threading.Thread(
                target=self._loop, name="refresh-token-cleanup", daemon=True
            )
            self._thread.start()
        logger.info("cleanup_scheduler_started", interval_seconds=self._interval)

    def stop(self, timeout: float | None = None) -> None:
        """Stop the trigger thread.

        A sweep already in progress is allowed to finish; this waits up to
        ``timeout`` seconds for it. If the thread is still alive afterwards
        the scheduler keeps it, and start() refuses to run until it exits.
        """
        with self._state_lock:
            thread = self._thread
            self._stop.set()
        if thread is None:
            return
        thread.join(timeout)
        if thread.is_alive():
            logger.warning("cleanup_scheduler_stop_timed_out", timeout=timeout)
            return
        with self._state_lock:
            if self._thread is thread:
                self._thread = None
        logger.info("cleanup_scheduler_stopped")

    def run_once(self) -> int | None:
        """Run one sweep now.

        Returns:
            Number of records deleted, or None if the sweep was skipped
            because another one is running or it failed.
        """
        if not self._run_lock.acquire(blocking=False):
            self._count(skipped=1)
            logger.warning("cleanup_skipped_previous_run_active")
            return None
        try:
            started = self._monotonic()
            logger.info("cleanup_started")
            deleted = self._store.delete_expired_and_revoked(self._clock())
        except Exception:
            self._count(failures=1)
            logger.exception("cleanup_failed")
            return None
        else:
            with self._state_lock:
                self.runs += 1
                self.last_deleted = deleted
            logger.info(
                "cleanup_finished",
                deleted=deleted,
                duration_seconds=round(self._monotonic() - started, 3),
            )
            return deleted
        finally:
            self._run_lock.release()

    def _loop(self) -> None:
        next_run = self._monotonic() + self._interval
        while not self._stop.wait(max(0.0, next_run - self._monotonic())):
            self.run_once()
            next_run += self._interval
            now = self._monotonic()
            if now >= next_run:
                # Ticks that fell due during an overrunning sweep are dropped
                missed = int((now - next_run) // self._interval) + 1
                self._count(skipped=missed)
                next_run += missed * self._interval
                logger.warning("cleanup_ticks_skipped", missed=missed)

    def _count(self, *, skipped: int = 0, failures: int = 0) -> None:
        with self._state_lock:
            self.skipped += skipped
            self.failures += failures

    def __enter__(self) -> CleanupScheduler:
        self.start()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.stop()
