"""APScheduler setup for the daily dispatch job."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from zoneinfo import ZoneInfo

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from config import AppConfig
from services.clock import preparation_time_of_day
from services.coordinator import DispatchCoordinator, PopulationLoadError
from services.observability import LogContext, StructuredLogger, get_logger

DAILY_JOB_ID = "daily_dispatch_run"


@dataclass
class SchedulerRuntime:
    """Runtime wrapper around the APScheduler job used by the server process."""

    config: AppConfig
    coordinator: DispatchCoordinator
    scheduler: BackgroundScheduler | None = None
    logger: StructuredLogger | None = None

    def start(self) -> None:
        """Register the daily job, firing ahead of release to overlap preparation."""
        timezone = ZoneInfo(self.config.timezone)
        fire_at = preparation_time_of_day(
            self.config.release_time,
            self.config.preparation_lead_minutes,
        )
        scheduler = BackgroundScheduler(timezone=timezone)
        scheduler.add_job(
            self._daily_dispatch_job,
            trigger=CronTrigger(
                hour=fire_at.hour,
                minute=fire_at.minute,
                timezone=timezone,
            ),
            id=DAILY_JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=600,
        )

        scheduler.start()
        self.scheduler = scheduler

    def shutdown(self) -> None:
        """Shutdown scheduler and wait for an in-flight run to finish."""
        if self.scheduler is None:
            return
        self.scheduler.shutdown(wait=True)
        self.scheduler = None

    def next_run_at(self) -> datetime | None:
        """Return next scheduled trigger time."""
        if self.scheduler is None:
            return None
        job = self.scheduler.get_job(DAILY_JOB_ID)
        if job is None:
            return None
        if job.next_run_time is None:
            return None
        return job.next_run_time.astimezone(UTC)

    def _daily_dispatch_job(self) -> None:
        logger = self.logger or get_logger()
        try:
            self.coordinator.run_daily_dispatch()
        except PopulationLoadError as exc:
            logger.error("daily_dispatch_aborted", context=LogContext(), error=str(exc))
