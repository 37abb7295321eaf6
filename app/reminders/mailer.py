import logging
import smtplib
from email.message import EmailMessage
from typing import Optional, Protocol

logger = logging.getLogger(__name__)


class EmailDeliveryError(Exception):
    """A single outbound email could not be delivered."""


class EmailTransport(Protocol):
    def send(self, to: str, subject: str, html_body: str) -> None:
        """Deliver one message or raise."""


class SmtpTransport:
    def __init__(
        self,
        host: str,
        port: int,
        from_address: str,
        username: Optional[str] = None,
        password: Optional[str] = None,
        use_tls: bool = True,
        timeout: float = 10.0,
    ):
        self.host = host
        self.port = port
        self.from_address = from_address
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout

    def build_message(self, to: str, subject: str, html_body: str) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = self.from_address
        msg["To"] = to
        msg["Subject"] = subject
        msg.set_content("This message requires an HTML-capable email client.")
        msg.add_alternative(html_body, subtype="html")
        return msg

    def send(self, to: str, subject: str, html_body: str) -> None:
        msg = self.build_message(to, subject, html_body)
        try:
            # one connection per message; timeout applies to each blocking socket
            # operation (connect, every read/write), not to the send as a whole
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
                if self.use_tls:
                    smtp.starttls()
                if self.username and self.password:
                    smtp.login(self.username, self.password)
                smtp.send_message(msg)
        except (smtplib.SMTPException, OSError) as exc:
            raise EmailDeliveryError(f"could not send to {to}: {exc}") from exc

        logger.info("Email sent to %s | Subject: %s", to, subject)
