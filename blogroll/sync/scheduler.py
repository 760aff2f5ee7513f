"""Periodic sync scheduling.

``SchedulerHandle`` owns an APScheduler ``AsyncIOScheduler`` with two jobs:
a one-off initial run shortly after startup and an interval run. Both call
the same engine, so they share its single-flight guard.
"""

from datetime import timedelta, timezone
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from blogroll.config import ServerConfig
from blogroll.log_system import UnifiedLogger
from blogroll.models.timestamps import utcnow
from blogroll.sync.engine import SyncEngine


logger = UnifiedLogger.get_logger(__name__)

INITIAL_JOB_ID = "initial_sync"
PERIODIC_JOB_ID = "periodic_sync"


class SchedulerHandle:
    """Start/stop lifecycle for the background sync jobs."""

    def __init__(self, engine: SyncEngine, sync_interval: int = 60, initial_delay: float = 15.0):
        self.engine = engine
        self.sync_interval = sync_interval
        self.initial_delay = initial_delay
        self._scheduler: Optional[AsyncIOScheduler] = None

    @classmethod
    def from_config(cls, engine: SyncEngine, config: ServerConfig) -> "SchedulerHandle":
        return cls(engine, config.sync_interval, config.initial_sync_delay)

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def start(self) -> None:
        """Schedule the initial and periodic runs. Must be called from a running event loop."""
        if self._scheduler is not None:
            return

        scheduler = AsyncIOScheduler(timezone=timezone.utc)
        scheduler.add_job(
            self._run,
            trigger=DateTrigger(run_date=utcnow() + timedelta(seconds=self.initial_delay)),
            id=INITIAL_JOB_ID,
            name="Initial blogroll sync",
            replace_existing=True,
        )
        scheduler.add_job(
            self._run,
            trigger=IntervalTrigger(minutes=self.sync_interval),
            id=PERIODIC_JOB_ID,
            name="Periodic blogroll sync",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        scheduler.start()
        self._scheduler = scheduler

        logger.info(
            f"Scheduler started (interval: {self.sync_interval}min, "
            f"item retention: {self.engine.options.max_item_age} days)"
        )

    def stop(self) -> None:
        if self._scheduler is None:
            return
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        self._scheduler = None
        logger.info("Scheduler stopped")

    def get_job_ids(self) -> list:
        if self._scheduler is None:
            return []
        return [job.id for job in self._scheduler.get_jobs()]

    async def _run(self) -> None:
        result = await self.engine.run_full_sync()
        if result.skipped:
            logger.info("Scheduled sync skipped: a run is already in progress")
        elif not result.success:
            logger.error(f"Scheduled sync failed: {result.error}")
