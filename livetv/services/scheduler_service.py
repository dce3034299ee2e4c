import logging
from datetime import datetime

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from livetv.config import Settings
from livetv.services.cache import CacheManager
from livetv.services.epg_guide import ProgramGuide


logger = logging.getLogger(__name__)


class RefreshScheduler:
    """Recurring catalog and guide refresh jobs"""

    EPG_JOB_ID = 'epg_refresh'
    CATALOG_JOB_ID = 'catalog_refresh'

    def __init__(self, settings: Settings, cache: CacheManager, guide: ProgramGuide):
        self.settings = settings
        self.cache = cache
        self.guide = guide
        self.scheduler: AsyncIOScheduler | None = None

    async def _epg_job(self) -> None:
        """Background job that rebuilds the program guide"""
        source = self.cache.epg_source()
        if not source:
            logger.warning("Scheduled EPG refresh skipped: no EPG source known")
            return
        logger.info("Scheduled EPG refresh triggered")
        try:
            await self.guide.refresh(source)
        except Exception as e:
            logger.error(f"Exception in scheduled EPG refresh: {e}", exc_info=True)

    async def _catalog_job(self) -> None:
        """Background job that rebuilds the catalog when it went stale"""
        try:
            await self.cache.refresh()
        except Exception as e:
            logger.error(f"Scheduled catalog refresh failed: {e}")

    def start(self) -> None:
        """Start the scheduler with both refresh jobs"""
        if self.scheduler and self.scheduler.running:
            logger.warning("Scheduler already running")
            return

        self.scheduler = AsyncIOScheduler(timezone='UTC')
        if self.settings.enable_epg:
            self.scheduler.add_job(
                self._epg_job,
                trigger=CronTrigger.from_crontab(self.settings.epg_refresh_cron),
                id=self.EPG_JOB_ID,
                max_instances=1,
                coalesce=True,
            )
        self.scheduler.add_job(
            self._catalog_job,
            trigger=IntervalTrigger(seconds=self.settings.cache_update_interval_seconds),
            id=self.CATALOG_JOB_ID,
            max_instances=1,
            coalesce=True,
        )

        self.scheduler.start()
        next_time = self.get_next_run_time()
        logger.info(
            "Scheduler started. Next EPG refresh: %s",
            next_time.isoformat() if next_time else "disabled"
        )

    def shutdown(self) -> None:
        """Shutdown the scheduler"""
        if self.scheduler and self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
        self.scheduler = None

    def get_next_run_time(self, job_id: str = EPG_JOB_ID) -> datetime | None:
        """Get next scheduled run time of a job"""
        if not self.scheduler:
            return None
        job = self.scheduler.get_job(job_id)
        return job.next_run_time if job else None

    @property
    def running(self) -> bool:
        return bool(self.scheduler and self.scheduler.running)
