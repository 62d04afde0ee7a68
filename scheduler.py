import logging
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from config import get_settings
from database import session_scope
from recurrence import RecurringEngine

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class SchedulerManager:
    """Posts due recurring transactions in the background.

    Runs once at startup, then nightly and hourly. The hourly job picks up
    whatever a missed nightly run left due.
    """

    def __init__(self, timezone: Optional[str] = None) -> None:
        self.timezone = timezone or get_settings().timezone
        self.scheduler = BackgroundScheduler(timezone=self.timezone)

    def _jobs(self):
        return [
            ("post_recurring_nightly", CronTrigger(hour=3, minute=15, timezone=self.timezone), 3600),
            ("post_recurring_hourly", IntervalTrigger(hours=1, timezone=self.timezone), 300),
        ]

    def _run_job(self, source: str = "manual") -> int:
        with session_scope() as session:
            posted = RecurringEngine(session).post_due()
        logger.info(f"recurring_job: source={source} posted={posted}")
        return posted

    def start(self) -> None:
        self._run_job("startup")
        for job_id, trigger, grace in self._jobs():
            self.scheduler.add_job(
                self._run_job,
                trigger,
                args=[job_id],
                id=job_id,
                replace_existing=True,
                misfire_grace_time=grace,
                coalesce=True,
            )
        self.scheduler.start()
        logger.info(
            f"recurring_scheduler_started: tz={self.timezone} "
            f"jobs={','.join(job.id for job in self.scheduler.get_jobs())}"
        )

    def stop(self) -> None:
        if not self.scheduler.running:
            return
        self.scheduler.shutdown(wait=False)
        logger.info("recurring_scheduler_stopped")
