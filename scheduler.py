import logging
from datetime import date
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from config import get_settings
from database import session_scope
from recurrence import RecurringEngine


logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def run_auto_post(today: Optional[date] = None, source: str = "manual") -> dict[str, int]:
    """Post every due auto-create entry and roll overdue subscriptions, across all users."""
    logger.info(f"auto_post_run: source={source}")
    with session_scope() as session:
        engine = RecurringEngine(session)
        posted = engine.post_due_entries(today)
        rolled = engine.roll_subscriptions(today)
    logger.info(
        f"auto_post_run: source={source} transactions_posted={posted} "
        f"subscriptions_advanced={rolled}"
    )
    return {"transactions_posted": posted, "subscriptions_advanced": rolled}


class SchedulerManager:
    def __init__(self) -> None:
        settings = get_settings()
        self.enabled = settings.auto_post_enabled
        self.scheduler = BackgroundScheduler(timezone=settings.timezone)

    def _run_job(self, source: str = "manual") -> None:
        run_auto_post(source=source)

    def start(self) -> None:
        if not self.enabled:
            logger.info("Scheduler disabled; auto-posting runs only on request")
            return

        self._run_job("startup")

        self.scheduler.add_job(
            self._run_job,
            CronTrigger(hour=3, minute=15),
            args=["daily_03:15"],
            id="auto_post_daily",
            replace_existing=True,
            misfire_grace_time=3600,
        )
        self.scheduler.add_job(
            self._run_job,
            IntervalTrigger(hours=1),
            args=["hourly_safety_net"],
            id="auto_post_hourly_safety",
            replace_existing=True,
            misfire_grace_time=300,
        )

        self.scheduler.start()
        logger.info("Scheduler started with daily 03:15 and hourly safety net")

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
