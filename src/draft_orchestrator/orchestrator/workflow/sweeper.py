"""Deletes expired run records on a fixed schedule."""

from __future__ import annotations

import logging
import threading
from datetime import datetime

from draft_orchestrator.state.run_store import RunStore, utc_now

logger = logging.getLogger(__name__)


def sweep_expired_runs(store: RunStore, *, now: datetime | None = None) -> int:
    """Delete every run whose ``expires_at`` has passed, whatever its status."""

    removed = store.delete_expired(now=now or utc_now())
    if removed:
        logger.info("Expired workflow runs deleted", extra={"removed": removed})
    return removed


class RunSweeper:
    """Daemon thread calling :func:`sweep_expired_runs` every ``interval_seconds``."""

    def __init__(self, store: RunStore, *, interval_seconds: float = 3600.0) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")
        self._store = store
        self._interval = interval_seconds
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="run-sweeper", daemon=True)
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

    def _loop(self) -> None:
        logger.info("Run sweeper started", extra={"interval_seconds": self._interval})
        while not self._stop.wait(self._interval):
            try:
                sweep_expired_runs(self._store)
            except Exception:
                # Keep the schedule alive; the next tick retries.
                logger.exception("Run sweep failed")
        logger.info("Run sweeper stopped")
