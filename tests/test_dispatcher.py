from datetime import datetime, timezone

import pytest

from app.reminders.dispatcher import ReminderDispatcher
from app.reminders.ledger import InMemoryReminderLedger
from app.reminders.mailer import EmailDeliveryError
from app.reminders.templates import reminder_subject
from app.reminders.types import (
    CHANNEL_EMAIL,
    CHANNEL_REALTIME,
    AssignmentInfo,
    CourseInfo,
    Recipient,
    ReminderKey,
    ReminderTriple,
)

DUE = datetime(2026, 3, 11, 23, 59, tzinfo=timezone.utc)


class FakeTransport:
    def __init__(self, fail_for=()):
        self.sent = []
        self.fail_for = set(fail_for)

    def send(self, to, subject, html_body):
        if to in self.fail_for:
            raise EmailDeliveryError(f"smtp timeout for {to}")
        self.sent.append((to, subject, html_body))


def make_triple(user_id=1, email="ada@example.com", name="Ada", title="HW1", synthetic=False):
    course = CourseInfo(id=10, title="CS5004")
    return ReminderTriple(
        user=Recipient(id=user_id, email=email, full_name=name),
        course=course,
        assignment=AssignmentInfo(
            id=100, course_id=course.id, title=title, due_at=DUE, max_score=50, kind="quiz"
        ),
        synthetic=synthetic,
    )


@pytest.mark.parametrize(
    "days, expected",
    [
        (1, "Assignment Due Tomorrow: HW1"),
        (3, "Assignment Due in 3 Days: HW1"),
        (7, "Assignment Due in 7 Days: HW1"),
    ],
)
def test_subject_depends_on_urgency(days, expected):
    assert reminder_subject("HW1", days) == expected


def test_dispatch_sends_one_email_with_details():
    transport = FakeTransport()
    dispatcher = ReminderDispatcher(transport, "http://lms.test/")

    attempts = dispatcher.dispatch(make_triple(), 1)

    assert [a.status for a in attempts] == ["sent"]
    assert attempts[0].key == ReminderKey(1, 100, 1, CHANNEL_EMAIL)
    assert len(transport.sent) == 1
    to, subject, html = transport.sent[0]
    assert to == "ada@example.com"
    assert subject == "Assignment Due Tomorrow: HW1"
    assert "due tomorrow" in html
    assert "CS5004" in html
    assert "2026-03-11 23:59" in html
    assert "<strong>Points:</strong> 50" in html
    assert "http://lms.test/courses/10/assignments" in html


def test_body_uses_days_for_longer_lead_time():
    transport = FakeTransport()
    ReminderDispatcher(transport, "http://lms.test").dispatch(make_triple(), 3)

    assert "due in 3 days" in transport.sent[0][2]


def test_user_supplied_text_is_escaped():
    transport = FakeTransport()
    triple = make_triple(name="<b>Ada</b>", title="Intro <script>")

    ReminderDispatcher(transport, "http://lms.test").dispatch(triple, 1)

    html = transport.sent[0][2]
    assert "<script>" not in html
    assert "&lt;script&gt;" in html
    assert "&lt;b&gt;Ada&lt;/b&gt;" in html


def test_transport_failure_is_returned_not_raised(caplog):
    transport = FakeTransport(fail_for={"ada@example.com"})
    dispatcher = ReminderDispatcher(transport, "http://lms.test")

    with caplog.at_level("WARNING"):
        attempts = dispatcher.dispatch(make_triple(), 1)

    assert attempts[0].status == "failed"
    assert "smtp timeout" in attempts[0].error
    assert "ada@example.com" in caplog.text
    assert "assignment_id=100" in caplog.text


def test_ledger_skips_already_sent_reminder():
    transport = FakeTransport()
    ledger = InMemoryReminderLedger()
    dispatcher = ReminderDispatcher(transport, "http://lms.test", ledger=ledger)

    first = dispatcher.dispatch(make_triple(), 1)
    second = dispatcher.dispatch(make_triple(), 1)
    other_lead_time = dispatcher.dispatch(make_triple(), 3)

    assert first[0].status == "sent"
    assert second[0].status == "skipped"
    assert other_lead_time[0].status == "sent"
    assert len(transport.sent) == 2


def test_failed_send_is_not_recorded():
    transport = FakeTransport(fail_for={"ada@example.com"})
    ledger = InMemoryReminderLedger()
    dispatcher = ReminderDispatcher(transport, "http://lms.test", ledger=ledger)

    dispatcher.dispatch(make_triple(), 1)
    assert len(ledger) == 0

    transport.fail_for.clear()
    assert dispatcher.dispatch(make_triple(), 1)[0].status == "sent"


def test_synthetic_reminders_bypass_ledger():
    transport = FakeTransport()
    ledger = InMemoryReminderLedger()
    dispatcher = ReminderDispatcher(transport, "http://lms.test", ledger=ledger)

    dispatcher.dispatch(make_triple(synthetic=True), 1)
    dispatcher.dispatch(make_triple(synthetic=True), 1)

    assert len(transport.sent) == 2
    assert len(ledger) == 0


def test_realtime_event_published_after_email():
    events = []
    dispatcher = ReminderDispatcher(FakeTransport(), "http://lms.test", event_publisher=events.append)

    attempts = dispatcher.dispatch(make_triple(), 7)

    assert [a.key.channel for a in attempts] == [CHANNEL_EMAIL, CHANNEL_REALTIME]
    assert events == [
        {
            "type": "assignment.reminder",
            "user_id": 1,
            "course_id": 10,
            "course_title": "CS5004",
            "assignment_id": 100,
            "assignment_title": "HW1",
            "due_at": DUE.isoformat(),
            "lead_time_days": 7,
        }
    ]


def test_realtime_failure_does_not_affect_email():
    def broken_publisher(event):
        raise ConnectionError("socket gone")

    transport = FakeTransport()
    dispatcher = ReminderDispatcher(transport, "http://lms.test", event_publisher=broken_publisher)

    email, realtime = dispatcher.dispatch(make_triple(), 1)

    assert email.status == "sent"
    assert realtime.status == "failed"
    assert len(transport.sent) == 1


def test_unreachable_ledger_does_not_block_send():
    class DownLedger:
        def was_sent(self, key):
            raise RuntimeError("ledger db down")

        def mark_sent(self, key):
            raise RuntimeError("ledger db down")

    transport = FakeTransport()
    dispatcher = ReminderDispatcher(transport, "http://lms.test", ledger=DownLedger())

    assert dispatcher.dispatch(make_triple(), 1)[0].status == "sent"
    assert len(transport.sent) == 1


def test_send_message_reports_failure_with_context(caplog):
    transport = FakeTransport(fail_for={"ada@example.com"})
    dispatcher = ReminderDispatcher(transport, "http://lms.test")

    with caplog.at_level("WARNING"):
        attempt = dispatcher.send_message(
            "ada@example.com", "Weekly", "<p>report</p>", label="progress report", user_id=7
        )

    assert attempt.status == "failed"
    assert attempt.key is None
    assert "progress report to ada@example.com (user_id=7)" in caplog.text


def test_send_message_success():
    transport = FakeTransport()
    dispatcher = ReminderDispatcher(transport, "http://lms.test")

    attempt = dispatcher.send_message("ada@example.com", "Weekly", "<p>report</p>")

    assert attempt.succeeded
    assert transport.sent == [("ada@example.com", "Weekly", "<p>report</p>")]
