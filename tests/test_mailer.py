import socket
import time

import pytest

from app.core import config
from app.reminders.ledger import SqlReminderLedger
from app.reminders.mailer import EmailDeliveryError, SmtpTransport
from app.reminders.service import build_reminder_service


def _unused_port() -> int:
    s = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    s.bind(("127.0.0.1", 0))
    port = s.getsockname()[1]
    s.close()
    return port


@pytest.fixture()
def silent_smtp_port():
    """A listening socket that accepts connections but never sends a greeting."""
    server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    server.bind(("127.0.0.1", 0))
    server.listen(5)
    try:
        yield server.getsockname()[1]
    finally:
        server.close()


def test_silent_server_fails_within_timeout(silent_smtp_port):
    transport = SmtpTransport("127.0.0.1", silent_smtp_port, "lms@example.com", use_tls=False, timeout=1)

    started = time.monotonic()
    with pytest.raises(EmailDeliveryError) as exc_info:
        transport.send("ada@example.com", "Hello", "<p>hi</p>")

    assert time.monotonic() - started < 5
    assert "ada@example.com" in str(exc_info.value)


def test_refused_connection_is_wrapped():
    transport = SmtpTransport("127.0.0.1", _unused_port(), "lms@example.com", use_tls=False, timeout=1)

    with pytest.raises(EmailDeliveryError) as exc_info:
        transport.send("ada@example.com", "Hello", "<p>hi</p>")

    assert "ada@example.com" in str(exc_info.value)
    assert isinstance(exc_info.value.__cause__, OSError)


def test_build_message_has_html_alternative():
    transport = SmtpTransport("localhost", 25, "lms@example.com")

    msg = transport.build_message("ada@example.com", "Assignment Due Tomorrow: HW1", "<p>due <b>soon</b></p>")

    assert msg["From"] == "lms@example.com"
    assert msg["To"] == "ada@example.com"
    assert msg["Subject"] == "Assignment Due Tomorrow: HW1"
    assert msg.get_content_type() == "multipart/alternative"
    html_part = msg.get_body(preferencelist=("html",))
    assert html_part.get_content_type() == "text/html"
    assert "<p>due <b>soon</b></p>" in html_part.get_content()


def test_service_uses_sql_ledger_when_dedup_enabled(monkeypatch, session_factory):
    monkeypatch.setattr(config, "REMINDER_DEDUP_ENABLED", True)

    service = build_reminder_service(session_factory)

    assert isinstance(service.dispatcher.ledger, SqlReminderLedger)


def test_service_has_no_ledger_when_dedup_disabled(monkeypatch, session_factory):
    monkeypatch.setattr(config, "REMINDER_DEDUP_ENABLED", False)

    service = build_reminder_service(session_factory)

    assert service.dispatcher.ledger is None


def test_service_builds_smtp_transport_from_config(monkeypatch, session_factory):
    monkeypatch.setattr(config, "EMAIL_HOST", "smtp.example.com")
    monkeypatch.setattr(config, "EMAIL_SEND_TIMEOUT", 2.5)

    service = build_reminder_service(session_factory)

    transport = service.dispatcher.transport
    assert isinstance(transport, SmtpTransport)
    assert transport.host == "smtp.example.com"
    assert transport.timeout == 2.5
