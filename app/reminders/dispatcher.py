import logging
from datetime import timezone, tzinfo
from typing import Callable, Optional

from app.reminders.ledger import ReminderLedger
from app.reminders.mailer import EmailTransport
from app.reminders.templates import reminder_subject, render_reminder_html
from app.reminders.types import (
    CHANNEL_EMAIL,
    CHANNEL_REALTIME,
    STATUS_FAILED,
    STATUS_SENT,
    STATUS_SKIPPED,
    DeliveryAttempt,
    ReminderKey,
    ReminderTriple,
)

logger = logging.getLogger(__name__)

# receives one "assignment.reminder" event dict per delivered reminder
EventPublisher = Callable[[dict], None]


class ReminderDispatcher:
    """
    Sends one notification per matched triple and channel.

    Delivery errors never propagate: each is logged with the recipient and
    assignment ids and returned as a failed attempt so the scan keeps going.
    """

    def __init__(
        self,
        transport: EmailTransport,
        frontend_url: str,
        ledger: Optional[ReminderLedger] = None,
        event_publisher: Optional[EventPublisher] = None,
        tz: tzinfo = timezone.utc,
    ):
        self.transport = transport
        self.frontend_url = frontend_url
        self.ledger = ledger
        self.event_publisher = event_publisher
        self.tz = tz

    def dispatch(self, triple: ReminderTriple, lead_time_days: int) -> list[DeliveryAttempt]:
        attempts = [self._send_email(triple, lead_time_days)]
        if self.event_publisher is not None:
            attempts.append(self._publish_event(triple, lead_time_days))
        return attempts

    def _already_sent(self, triple: ReminderTriple, key: ReminderKey) -> bool:
        # synthetic reminders are never recorded, they reappear every degraded scan
        if self.ledger is None or triple.synthetic:
            return False
        try:
            return self.ledger.was_sent(key)
        except Exception as exc:
            logger.warning("Sent-reminder ledger unavailable, sending %s anyway: %s", key, exc)
            return False

    def _mark_sent(self, triple: ReminderTriple, key: ReminderKey) -> None:
        if self.ledger is None or triple.synthetic:
            return
        try:
            self.ledger.mark_sent(key)
        except Exception:
            # delivery already happened; a later scan may resend this one
            logger.exception("Could not record sent reminder %s", key)

    def send_message(
        self,
        to: str,
        subject: str,
        html_body: str,
        key: Optional[ReminderKey] = None,
        label: str = "email",
        **context,
    ) -> DeliveryAttempt:
        """Send one email; failures are logged with `context` and returned, never raised."""
        try:
            self.transport.send(to, subject, html_body)
        except Exception as exc:
            details = ", ".join(f"{name}={value}" for name, value in context.items())
            logger.warning("Failed to send %s to %s (%s): %s", label, to, details, exc)
            return DeliveryAttempt(
                recipient=to, subject=subject, status=STATUS_FAILED, key=key, error=str(exc)
            )
        return DeliveryAttempt(recipient=to, subject=subject, status=STATUS_SENT, key=key)

    def _send_email(self, triple: ReminderTriple, lead_time_days: int) -> DeliveryAttempt:
        user, assignment = triple.user, triple.assignment
        key = ReminderKey(user.id, assignment.id, lead_time_days, CHANNEL_EMAIL)
        subject = reminder_subject(assignment.title, lead_time_days)

        if self._already_sent(triple, key):
            logger.debug("Skipping reminder %s, already sent", key)
            return DeliveryAttempt(recipient=user.email, subject=subject, status=STATUS_SKIPPED, key=key)

        html = render_reminder_html(
            user, triple.course, assignment, lead_time_days, self.frontend_url, self.tz
        )
        attempt = self.send_message(
            user.email,
            subject,
            html,
            key=key,
            label="reminder",
            user_id=user.id,
            assignment_id=assignment.id,
        )
        if attempt.succeeded:
            self._mark_sent(triple, key)
        return attempt

    def _publish_event(self, triple: ReminderTriple, lead_time_days: int) -> DeliveryAttempt:
        user, assignment = triple.user, triple.assignment
        key = ReminderKey(user.id, assignment.id, lead_time_days, CHANNEL_REALTIME)
        subject = reminder_subject(assignment.title, lead_time_days)

        if self._already_sent(triple, key):
            return DeliveryAttempt(recipient=user.email, subject=subject, status=STATUS_SKIPPED, key=key)

        event = {
            "type": "assignment.reminder",
            "user_id": user.id,
            "course_id": triple.course.id,
            "course_title": triple.course.title,
            "assignment_id": assignment.id,
            "assignment_title": assignment.title,
            "due_at": assignment.due_at.isoformat(),
            "lead_time_days": lead_time_days,
        }
        try:
            self.event_publisher(event)
        except Exception as exc:
            logger.warning(
                "Failed to publish reminder event for user_id=%s, assignment_id=%s: %s",
                user.id,
                assignment.id,
                exc,
            )
            return DeliveryAttempt(
                recipient=user.email, subject=subject, status=STATUS_FAILED, key=key, error=str(exc)
            )

        self._mark_sent(triple, key)
        return DeliveryAttempt(recipient=user.email, subject=subject, status=STATUS_SENT, key=key)
