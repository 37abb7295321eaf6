import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.course import Course
from app.models.progress import CourseProgress
from app.models.user import User
from app.reminders.dispatcher import ReminderDispatcher
from app.reminders.sources import STORE_ERRORS, as_utc
from app.reminders.templates import progress_report_subject, render_progress_report_html
from app.reminders.types import ReportSummary

logger = logging.getLogger(__name__)


@dataclass
class UserProgress:
    user_id: int
    email: str
    name: str
    reminders_enabled: bool
    learning_streak: int
    courses: list[dict] = field(default_factory=list)


def collect_weekly_progress(db: Session, since: datetime) -> list[UserProgress]:
    """Group course progress touched since `since` by user."""
    stmt = (
        select(CourseProgress, User, Course)
        .join(User, User.id == CourseProgress.user_id)
        .join(Course, Course.id == CourseProgress.course_id)
        .where(CourseProgress.last_accessed_at >= as_utc(since))
        .order_by(User.id, Course.id)
    )

    by_user: dict[int, UserProgress] = {}
    for progress, user, course in db.execute(stmt).all():
        entry = by_user.get(user.id)
        if entry is None:
            entry = UserProgress(
                user_id=user.id,
                email=user.email,
                name=user.full_name or user.email,
                reminders_enabled=user.reminders_enabled,
                learning_streak=user.learning_streak or 0,
            )
            by_user[user.id] = entry
        entry.courses.append(
            {
                "title": course.title,
                "progress": progress.overall_progress or 0,
                "status": progress.status,
            }
        )
    return list(by_user.values())


class WeeklyProgressReporter:
    """Emails each recently active user a progress summary through the reminder dispatcher."""

    def __init__(self, dispatcher: ReminderDispatcher, window: timedelta = timedelta(days=7)):
        self.dispatcher = dispatcher
        self.window = window

    def run(self, db: Session, now: datetime, triggered_by: str = "scheduler") -> ReportSummary:
        summary = ReportSummary(triggered_by=triggered_by)
        try:
            groups = collect_weekly_progress(db, now - self.window)
        except STORE_ERRORS:
            logger.exception("Weekly progress report aborted: progress store unavailable")
            return summary

        subject = progress_report_subject()
        for group in groups:
            if not group.reminders_enabled:
                continue
            summary.recipients += 1
            html = render_progress_report_html(group.name, group.learning_streak, group.courses)
            summary.record(
                self.dispatcher.send_message(
                    group.email, subject, html, label="progress report", user_id=group.user_id
                )
            )

        logger.info(
            "Weekly progress report: %s sent, %s failed (triggered by %s)",
            summary.sent,
            summary.failed,
            triggered_by,
        )
        return summary
