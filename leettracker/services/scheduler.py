import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from leettracker.core.config import settings
from leettracker.services import sync

log = logging.getLogger(__name__)

SYNC_JOB_ID = "sync:all"


class SyncScheduler:
    def __init__(self, interval_minutes: int | None = None):
        self.interval_minutes = interval_minutes or settings.sync_interval_minutes
        self.scheduler = AsyncIOScheduler()

    def start(self) -> None:
        self.scheduler.add_job(
            self._run_sync,
            "interval",
            id=SYNC_JOB_ID,
            minutes=self.interval_minutes,
            # overlapping runs are tolerated, but there's no point queuing them
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self.scheduler.start()
        log.info("Sync scheduled every %d minutes", self.interval_minutes)

    def shutdown(self) -> None:
        self.scheduler.shutdown()

    async def _run_sync(self) -> None:
        try:
            summary = await sync.sync_all()
        except Exception as exc:
            log.error("Scheduled sync failed: %s", exc)
            return
        for outcome in summary.failed:
            log.warning("Scheduled sync: %s failed: %s", outcome.username, outcome.error)
