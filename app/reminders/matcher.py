import logging
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Optional

from app.reminders.sources import (
    STORE_ERRORS,
    FallbackReminderSource,
    ReminderDataSource,
    as_utc,
)
from app.reminders.types import ReminderTriple

logger = logging.getLogger(__name__)


def due_window(lead_time_days: int, now: datetime, tz: tzinfo = timezone.utc) -> tuple[datetime, datetime]:
    """
    Returns the half-open window [start, end) covering the whole calendar day
    that lies lead_time_days after now's date in tz.

    Time of day of `now` is ignored; an instant exactly at midnight belongs
    to the day that starts there.
    """
    target_day: date = as_utc(now).astimezone(tz).date() + timedelta(days=lead_time_days)
    start = datetime.combine(target_day, time.min, tzinfo=tz)
    end = datetime.combine(target_day + timedelta(days=1), time.min, tzinfo=tz)
    return start, end


class ReminderMatcher:
    def __init__(
        self,
        source: ReminderDataSource,
        fallback_email: str,
        tz: tzinfo = timezone.utc,
    ):
        self.source = source
        self.fallback_email = fallback_email
        self.tz = tz
        self.last_match_degraded = False

    def match(self, lead_time_days: int, now: datetime) -> list[ReminderTriple]:
        if isinstance(lead_time_days, bool) or not isinstance(lead_time_days, int) or lead_time_days <= 0:
            raise ValueError(f"lead_time_days must be a positive integer, got {lead_time_days!r}")

        start, end = due_window(lead_time_days, now, self.tz)

        try:
            triples = self._match_with(self.source, lead_time_days, start, end)
            self.last_match_degraded = getattr(self.source, "synthetic", False)
            return triples
        except STORE_ERRORS as exc:
            logger.warning(
                "Reminder store unavailable for %s-day scan, using fallback dataset: %s",
                lead_time_days,
                exc,
            )

        fallback = FallbackReminderSource(lead_time_days, now, self.fallback_email, self.tz)
        self.last_match_degraded = True
        return self._match_with(fallback, lead_time_days, start, end)

    def _match_with(
        self,
        source: ReminderDataSource,
        lead_time_days: int,
        start: datetime,
        end: datetime,
    ) -> list[ReminderTriple]:
        due = [
            d for d in source.find_assignments_due_between(start, end)
            if _in_window(d.assignment.due_at, start, end)
        ]
        if not due:
            return []

        users = [
            u for u in source.find_users_with_reminders_enabled()
            if u.preference.wants(lead_time_days)
        ]

        triples = []
        for item in due:
            for user in users:
                if not source.is_enrolled(user.id, item.course.id):
                    continue
                if source.has_submission(user.id, item.assignment.id):
                    continue
                triples.append(
                    ReminderTriple(
                        user=user,
                        course=item.course,
                        assignment=item.assignment,
                        synthetic=getattr(source, "synthetic", False),
                    )
                )

        logger.info(
            "Matched %s reminder(s) for %s day(s) before deadline (%s due assignment(s))",
            len(triples),
            lead_time_days,
            len(due),
        )
        return triples


def _in_window(due_at: Optional[datetime], start: datetime, end: datetime) -> bool:
    if due_at is None:
        return False
    return start <= as_utc(due_at) < end
