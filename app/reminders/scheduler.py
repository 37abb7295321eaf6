import logging
from datetime import tzinfo
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from app.reminders.service import ReminderService

logger = logging.getLogger(__name__)

REMINDER_JOB_ID = "assignment_reminders"
WEEKLY_REPORT_JOB_ID = "weekly_progress_report"


class ReminderScheduler:
    """
    Recurring triggers for the reminder service.

    - assignment reminders: daily cron (production) or a fixed interval (dev)
    - weekly progress report: weekly cron

    The two jobs are independent and may overlap. Each job allows a single
    running instance; the service also refuses overlapping scans itself.
    """

    def __init__(
        self,
        service: ReminderService,
        tz: tzinfo,
        reminder_hour: int = 7,
        reminder_minute: int = 22,
        interval_seconds: Optional[int] = None,
        report_day_of_week: str = "sun",
        report_hour: int = 18,
    ):
        self.service = service
        self.tz = tz
        self.reminder_hour = reminder_hour
        self.reminder_minute = reminder_minute
        self.interval_seconds = interval_seconds
        self.report_day_of_week = report_day_of_week
        self.report_hour = report_hour
        self.scheduler = BackgroundScheduler(timezone=tz)
        self.is_running = False

    def reminder_trigger(self):
        if self.interval_seconds:
            return IntervalTrigger(seconds=self.interval_seconds, timezone=self.tz)
        return CronTrigger(hour=self.reminder_hour, minute=self.reminder_minute, timezone=self.tz)

    def report_trigger(self):
        return CronTrigger(day_of_week=self.report_day_of_week, hour=self.report_hour, minute=0, timezone=self.tz)

    def _run_reminders(self):
        self.service.run_assignment_scan(triggered_by="scheduler")

    def _run_weekly_report(self):
        self.service.run_weekly_report(triggered_by="scheduler")

    def start(self) -> None:
        if self.is_running:
            return

        self.scheduler.add_job(
            self._run_reminders,
            self.reminder_trigger(),
            id=REMINDER_JOB_ID,
            name="Assignment deadline reminders",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self.scheduler.add_job(
            self._run_weekly_report,
            self.report_trigger(),
            id=WEEKLY_REPORT_JOB_ID,
            name="Weekly progress report",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

        self.scheduler.start()
        self.is_running = True
        if self.interval_seconds:
            logger.info("Email scheduler started (reminders every %ss)", self.interval_seconds)
        else:
            logger.info(
                "Email scheduler started (reminders daily at %02d:%02d)",
                self.reminder_hour,
                self.reminder_minute,
            )

    def shutdown(self) -> None:
        if self.is_running:
            self.scheduler.shutdown(wait=True)
            self.is_running = False
            logger.info("Email scheduler stopped")

    def get_status(self) -> dict:
        return {
            "is_running": self.is_running,
            "scan_state": self.service.state,
            "jobs": [
                {
                    "id": job.id,
                    "name": job.name,
                    "next_run_time": job.next_run_time.isoformat() if getattr(job, "next_run_time", None) else None,
                }
                for job in self.scheduler.get_jobs()
            ],
        }
