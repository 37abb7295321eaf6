"""
Data access for the reminder matcher.

Two implementations of one protocol:

- SqlReminderSource reads the catalog, preferences and submission ledger
  from the primary database.
- FallbackReminderSource serves a fixed synthetic dataset so a scan can
  still complete while the primary store is down. Nothing it returns is
  persisted or reconciled with real data later.
"""
import logging
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Optional, Protocol

from sqlalchemy import and_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import DEFAULT_LEAD_TIMES
from app.models.assignment import Assignment
from app.models.course import Course
from app.models.enrollment import Enrollment
from app.models.submission import Submission
from app.models.user import User
from app.reminders.cache import ExpiringCache
from app.reminders.types import (
    AssignmentInfo,
    CourseInfo,
    DueAssignment,
    Recipient,
    ReminderPreference,
)

logger = logging.getLogger(__name__)


class StoreUnavailableError(Exception):
    """Raised when a reminder data store cannot be queried."""


# errors that send the matcher to the degraded dataset
STORE_ERRORS = (SQLAlchemyError, StoreUnavailableError)


class ReminderDataSource(Protocol):
    synthetic: bool

    def find_assignments_due_between(self, start: datetime, end: datetime) -> list[DueAssignment]:
        ...

    def find_users_with_reminders_enabled(self) -> list[Recipient]:
        ...

    def has_submission(self, user_id: int, assignment_id: int) -> bool:
        ...

    def is_enrolled(self, user_id: int, course_id: int) -> bool:
        ...


def as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def load_enrolled_course_ids(db: Session, user_id: int) -> frozenset[int]:
    rows = db.execute(
        select(Enrollment.course_id).where(Enrollment.student_id == user_id)
    ).scalars()
    return frozenset(rows)


class SqlReminderSource:
    synthetic = False

    def __init__(self, db: Session, enrollment_cache: Optional[ExpiringCache] = None):
        self.db = db
        self.enrollment_cache = enrollment_cache

    def find_assignments_due_between(self, start: datetime, end: datetime) -> list[DueAssignment]:
        stmt = (
            select(Assignment, Course)
            .join(Course, Course.id == Assignment.course_id)
            .where(
                and_(
                    Assignment.is_active.is_(True),
                    Assignment.due_at.is_not(None),
                    Assignment.due_at >= as_utc(start),
                    Assignment.due_at < as_utc(end),
                )
            )
        )
        due = []
        for assignment, course in self.db.execute(stmt).all():
            due.append(
                DueAssignment(
                    assignment=AssignmentInfo(
                        id=assignment.id,
                        course_id=assignment.course_id,
                        title=assignment.title,
                        due_at=as_utc(assignment.due_at),
                        max_score=assignment.max_score,
                        kind=assignment.kind,
                    ),
                    course=CourseInfo(id=course.id, title=course.title),
                )
            )
        return due

    def find_users_with_reminders_enabled(self) -> list[Recipient]:
        users = self.db.execute(
            select(User).where(User.reminders_enabled.is_(True))
        ).scalars()
        return [
            Recipient(
                id=u.id,
                email=u.email,
                full_name=u.full_name,
                preference=ReminderPreference.from_stored(u.reminders_enabled, u.reminder_lead_times),
            )
            for u in users
        ]

    def has_submission(self, user_id: int, assignment_id: int) -> bool:
        found = self.db.execute(
            select(Submission.id).where(
                Submission.student_id == user_id,
                Submission.assignment_id == assignment_id,
            )
        ).first()
        return found is not None

    def is_enrolled(self, user_id: int, course_id: int) -> bool:
        if self.enrollment_cache is not None:
            return course_id in self.enrollment_cache.get(user_id)
        return course_id in load_enrolled_course_ids(self.db, user_id)


# Synthetic dataset; negative ids never collide with database rows.
FALLBACK_COURSE_ID = -1
FALLBACK_ASSIGNMENT_ID = -1
FALLBACK_USER_ID = -1


class FallbackReminderSource:
    synthetic = True

    def __init__(self, lead_time_days: int, now: datetime, fallback_email: str, tz: tzinfo = timezone.utc):
        # wall-clock arithmetic in the reminder time zone keeps the due date on the target day
        due_local = as_utc(now).astimezone(tz) + timedelta(days=lead_time_days)
        self.course = CourseInfo(id=FALLBACK_COURSE_ID, title="Introduction to Web Development")
        self.assignment = AssignmentInfo(
            id=FALLBACK_ASSIGNMENT_ID,
            course_id=FALLBACK_COURSE_ID,
            title="Build a Personal Website",
            due_at=as_utc(due_local),
            max_score=100,
            kind="project",
        )
        # always includes the requested lead time so the degraded scan is never empty
        self.user = Recipient(
            id=FALLBACK_USER_ID,
            email=fallback_email,
            full_name="Student User",
            preference=ReminderPreference(
                enabled=True,
                lead_times=frozenset(DEFAULT_LEAD_TIMES) | {lead_time_days},
            ),
        )

    def find_assignments_due_between(self, start: datetime, end: datetime) -> list[DueAssignment]:
        if as_utc(start) <= self.assignment.due_at < as_utc(end):
            return [DueAssignment(assignment=self.assignment, course=self.course)]
        return []

    def find_users_with_reminders_enabled(self) -> list[Recipient]:
        return [self.user]

    def has_submission(self, user_id: int, assignment_id: int) -> bool:
        return False

    def is_enrolled(self, user_id: int, course_id: int) -> bool:
        return user_id == self.user.id and course_id == self.course.id
