"""
Record of reminders already delivered, keyed by
(user_id, assignment_id, lead_time_days, channel).

Consulted before a send and updated only after a successful one.
"""
import logging
import threading
from typing import Callable, Protocol

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models.sent_reminder import SentReminder
from app.reminders.types import ReminderKey

logger = logging.getLogger(__name__)


class ReminderLedger(Protocol):
    def was_sent(self, key: ReminderKey) -> bool:
        ...

    def mark_sent(self, key: ReminderKey) -> None:
        ...


class InMemoryReminderLedger:
    def __init__(self):
        self._keys: set[ReminderKey] = set()
        self._lock = threading.Lock()

    def was_sent(self, key: ReminderKey) -> bool:
        with self._lock:
            return key in self._keys

    def mark_sent(self, key: ReminderKey) -> None:
        with self._lock:
            self._keys.add(key)

    def __len__(self) -> int:
        return len(self._keys)


class SqlReminderLedger:
    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def was_sent(self, key: ReminderKey) -> bool:
        with self.session_factory() as db:
            found = db.execute(
                select(SentReminder.id).where(
                    SentReminder.user_id == key.user_id,
                    SentReminder.assignment_id == key.assignment_id,
                    SentReminder.lead_time_days == key.lead_time_days,
                    SentReminder.channel == key.channel,
                )
            ).first()
            return found is not None

    def mark_sent(self, key: ReminderKey) -> None:
        with self.session_factory() as db:
            db.add(
                SentReminder(
                    user_id=key.user_id,
                    assignment_id=key.assignment_id,
                    lead_time_days=key.lead_time_days,
                    channel=key.channel,
                )
            )
            try:
                db.commit()
            except IntegrityError:
                # an overlapping manual trigger already recorded it
                db.rollback()
                logger.info("Reminder %s already recorded", key)
