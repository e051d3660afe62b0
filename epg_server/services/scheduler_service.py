import logging
from datetime import datetime
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from epg_server.services.response_cache import MemoryResponseCache, ResponseCache


logger = logging.getLogger(__name__)

class CacheSweepScheduler:
    """Scheduler that evicts expired entries from the in-process response cache"""

    def __init__(self):
        self.scheduler: AsyncIOScheduler | None = None
        self._cache: MemoryResponseCache | None = None

    async def _sweep_job(self) -> None:
        """Background job that drops expired cache entries"""
        if self._cache is None:
            return
        removed = self._cache.sweep()
        logger.info(f"Cache sweep removed {removed} expired responses, {len(self._cache)} left")

    def start(self, cache: ResponseCache, cron: str, timezone: str) -> None:
        """Start the sweep job; other cache backends expire entries themselves"""
        if not isinstance(cache, MemoryResponseCache):
            logger.info("Cache backend '%s' needs no sweeping", cache.name)
            return

        if self.scheduler and self.scheduler.running:
            logger.warning("Scheduler already running")
            return

        try:
            trigger = CronTrigger.from_crontab(cron, timezone=timezone)
        except (ValueError, KeyError) as exc:
            logger.error("Invalid cron expression '%s': %s", cron, exc)
            raise

        self._cache = cache
        self.scheduler = AsyncIOScheduler(timezone=timezone)
        self.scheduler.add_job(
            self._sweep_job,
            trigger=trigger,
            id='cache_sweep',
            max_instances=1,
            coalesce=True,
        )

        self.scheduler.start()
        next_time = self.get_next_run_time()
        logger.info(
            "Scheduler started. Next cache sweep: %s",
            next_time.isoformat() if next_time else "unknown"
        )

    def shutdown(self) -> None:
        """Shutdown the scheduler"""
        if self.scheduler and self.scheduler.running:
            self.scheduler.shutdown()
            logger.info("Scheduler stopped")
        self.scheduler = None
        self._cache = None

    def get_next_run_time(self) -> datetime | None:
        """Get next scheduled sweep time"""
        if not self.scheduler:
            return None
        job = self.scheduler.get_job('cache_sweep')
        return job.next_run_time if job else None


cache_scheduler = CacheSweepScheduler()
