"""APScheduler-driven poller for the delegation sync.

On start the poller looks at the store once: an empty store gets a full
historical sync before the first tick, otherwise the sync engine is told the
backfill already happened. Ticks then fire every ``polling_interval``.

At most one cycle runs at a time. A tick that arrives while a cycle is in
flight is dropped rather than queued; the next tick sees the fresh watermark.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from tezos_indexer.services.sync.delegation_sync import DelegationSyncService

logger = structlog.get_logger(component="poller")

SYNC_JOB_ID = "delegation_sync"
MAX_CONSECUTIVE_ERRORS = 5


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class DelegationPoller:
    """Periodic driver for ``DelegationSyncService.sync``."""

    def __init__(
        self,
        sync_service: DelegationSyncService,
        polling_interval: timedelta,
        shutdown_timeout: timedelta = timedelta(seconds=30),
    ):
        self.sync_service = sync_service
        self.polling_interval = polling_interval
        self.shutdown_timeout = shutdown_timeout

        self._scheduler: Optional[AsyncIOScheduler] = None
        self._startup_task: Optional[asyncio.Task] = None
        self._cycle_task: Optional[asyncio.Task] = None
        self._stop_task: Optional[asyncio.Task] = None
        self._stopping = False
        self.dropped_ticks = 0

        # Track sync state for observability
        self._last_sync: Dict[str, Any] = {
            "success": None,
            "timestamp": None,
            "error": None,
            "mode": None,
            "processed": 0,
            "consecutive_failures": 0,
        }

    # ==================== Lifecycle ====================

    def start(self) -> None:
        """Launch the poller in the background and return immediately."""
        if self._startup_task is not None:
            logger.warning("Poller already started")
            return
        self._startup_task = asyncio.create_task(self.run_startup(), name="delegation-poller-startup")
        self._startup_task.add_done_callback(self._on_startup_done)

    def _on_startup_done(self, task: asyncio.Task) -> None:
        if not task.cancelled() and task.exception() is not None:
            logger.error("Poller failed to start", error=str(task.exception()))

    async def run_startup(self) -> None:
        """Prime the sync engine, backfill an empty store, then start ticking."""
        try:
            highest_level = await self.sync_service.get_highest_level()

            if highest_level == 0:
                logger.info("Store is empty, running initial historical sync")
                await self._run_cycle(initial=True)
            else:
                self.sync_service.is_historical_sync_done = True
                logger.info("Resuming from stored watermark", highest_level=highest_level)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            # The ticker still starts; the next cycle re-reads the watermark
            self._record_failure(e)
            logger.error("Poller startup check failed", error=str(e))

        if self._stopping:
            return

        scheduler = AsyncIOScheduler(timezone="UTC")
        scheduler.add_job(
            self.tick,
            trigger=IntervalTrigger(seconds=self.polling_interval.total_seconds()),
            id=SYNC_JOB_ID,
            name="Delegation sync",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        scheduler.start()
        self._scheduler = scheduler
        logger.info("Starting delegation poller", interval_seconds=self.polling_interval.total_seconds())

    async def tick(self) -> None:
        """Start a cycle unless one is already in flight."""
        if self._stopping:
            return
        if self._cycle_task is not None and not self._cycle_task.done():
            self.dropped_ticks += 1
            logger.debug("Skipping sync as previous sync is still running")
            return
        self._cycle_task = asyncio.create_task(self._run_cycle(), name="delegation-sync-cycle")

    def request_stop(self) -> asyncio.Task:
        """Begin stopping without waiting; repeated calls share one stop task."""
        self._stopping = True
        if self._stop_task is None:
            self._stop_task = asyncio.create_task(self._stop(), name="delegation-poller-stop")
        return self._stop_task

    async def stop(self) -> None:
        """Stop ticking, cancel the in-flight cycle and wait for it to unwind."""
        await self.request_stop()

    async def _stop(self) -> None:
        if self._scheduler is not None and self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")

        pending = [
            t for t in (self._startup_task, self._cycle_task) if t is not None and not t.done()
        ]
        for task in pending:
            task.cancel()

        if pending:
            done, still_running = await asyncio.wait(
                pending, timeout=self.shutdown_timeout.total_seconds()
            )
            if still_running:
                logger.warning("Sync did not stop within shutdown timeout", tasks=len(still_running))
            for task in done:
                if not task.cancelled() and task.exception() is not None:
                    logger.error("Poller task failed during shutdown", error=str(task.exception()))

        logger.info("Polling stopped")

    # ==================== Cycle ====================

    async def _run_cycle(self, initial: bool = False) -> None:
        """Run one sync cycle and record its outcome; failures never escape."""
        try:
            result = await self.sync_service.sync()
        except asyncio.CancelledError:
            logger.info("Sync cycle cancelled", initial=initial)
            raise
        except Exception as e:
            failures = self._record_failure(e)
            logger.error(
                "Initial historical sync failed" if initial else "Regular sync failed",
                error=str(e),
                consecutive_failures=failures,
            )
            if failures == MAX_CONSECUTIVE_ERRORS:
                logger.warning("Too many consecutive sync errors", consecutive_failures=failures)
            return

        self._last_sync.update(
            success=True,
            timestamp=_utcnow_iso(),
            error=None,
            mode=result.mode,
            processed=result.processed,
            consecutive_failures=0,
        )
        logger.info(
            "Sync cycle completed",
            mode=result.mode,
            processed=result.processed,
            last_level=result.last_level,
        )

    def _record_failure(self, error: Exception) -> int:
        self._last_sync["consecutive_failures"] += 1
        self._last_sync.update(
            success=False,
            timestamp=_utcnow_iso(),
            error=str(error),
            mode=getattr(error, "mode", None),
            processed=0,
        )
        return self._last_sync["consecutive_failures"]

    # ==================== Status ====================

    @property
    def is_running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    @property
    def is_stopping(self) -> bool:
        return self._stopping

    @property
    def cycle_in_flight(self) -> bool:
        return self._cycle_task is not None and not self._cycle_task.done()

    def get_status(self) -> Dict[str, Any]:
        """Get current poller status for health checks."""
        job = self._scheduler.get_job(SYNC_JOB_ID) if self.is_running else None
        return {
            "running": self.is_running,
            "next_sync": job.next_run_time.isoformat() if job and job.next_run_time else None,
            "dropped_ticks": self.dropped_ticks,
            "last_sync": self._last_sync.copy(),
        }

    @property
    def last_sync(self) -> Dict[str, Any]:
        return self._last_sync.copy()
