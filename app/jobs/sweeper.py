"""Background eviction of finished jobs past the retention window."""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from app.jobs.store import JobStore
from app.jobs.models import utcnow

logger = logging.getLogger(__name__)


class RetentionSweeper:
    """Periodically evicts completed/failed jobs older than the retention window.

    Pending and processing jobs are never evicted, however old they are.
    """

    def __init__(
        self,
        store: JobStore,
        retention_seconds: float = 3600,
        interval_seconds: float = 3600,
        cleanup: Optional[Callable[[], int]] = None,
    ):
        """
        cleanup: callable() -> int
            Extra TTL housekeeping run after each sweep (e.g. removing orphaned
            uploads). Returns the number of items removed.
        """
        self._store = store
        self._retention = timedelta(seconds=retention_seconds)
        self._interval = interval_seconds
        self._cleanup = cleanup
        self._task: Optional[asyncio.Task] = None
        self._running = False

    def sweep(self, now: Optional[datetime] = None) -> int:
        """Evict expired terminal jobs. Returns count of evicted jobs."""
        cutoff = (now or utcnow()) - self._retention
        removed = 0
        for job in self._store.snapshot():
            if not job.status.is_terminal or job.completed_at is None:
                continue
            if job.completed_at < cutoff and self._store.evict(job.id):
                removed += 1
        if removed:
            logger.info("Evicted %d expired job(s)", removed)
        return removed

    def run_once(self) -> int:
        """One sweep plus the cleanup hook. Returns count of evicted jobs."""
        removed = self.sweep()
        if self._cleanup is not None:
            cleaned = self._cleanup()
            if cleaned:
                logger.info("Removed %d orphaned upload(s)", cleaned)
        return removed

    async def start(self) -> None:
        self._running = True
        self._task = asyncio.create_task(self._sweep_loop())

    async def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def _sweep_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self._interval)
            try:
                self.run_once()
            except Exception:
                logger.exception("Retention sweep failed")
