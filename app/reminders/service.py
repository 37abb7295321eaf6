import logging
import threading
from datetime import datetime, timezone, tzinfo
from typing import Callable, Iterable, Optional
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session

from app.core import config
from app.reminders.cache import ExpiringCache
from app.reminders.dispatcher import EventPublisher, ReminderDispatcher
from app.reminders.ledger import ReminderLedger, SqlReminderLedger
from app.reminders.mailer import EmailTransport, SmtpTransport
from app.reminders.matcher import ReminderMatcher
from app.reminders.progress_report import WeeklyProgressReporter
from app.reminders.sources import SqlReminderSource, load_enrolled_course_ids
from app.reminders.templates import render_delivery_check_html, delivery_check_subject
from app.reminders.types import LeadTimeResult, ReportSummary, ScanReport, DeliveryCheckResult

logger = logging.getLogger(__name__)

STATE_IDLE = "idle"
STATE_SCANNING = "scanning"


class ReminderService:
    """
    Runs the reminder pipeline: match, then dispatch, once per lead time.

    State goes idle -> scanning -> idle. A scan that starts while another is
    running returns immediately with report.skipped set and sends nothing.
    Lead times are processed one after another in ascending order.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        transport: EmailTransport,
        lead_times: Iterable[int] = config.REMINDER_LEAD_TIMES,
        tz: tzinfo = timezone.utc,
        fallback_email: str = config.REMINDER_FALLBACK_EMAIL,
        frontend_url: str = config.FRONTEND_URL,
        ledger: Optional[ReminderLedger] = None,
        event_publisher: Optional[EventPublisher] = None,
        enrollment_cache_ttl: float = config.ENROLLMENT_CACHE_TTL_SECONDS,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.session_factory = session_factory
        self.lead_times = _validate_lead_times(lead_times)
        self.tz = tz
        self.fallback_email = fallback_email
        self.clock = clock
        self.dispatcher = ReminderDispatcher(
            transport,
            frontend_url,
            ledger=ledger,
            event_publisher=event_publisher,
            tz=tz,
        )
        self.reporter = WeeklyProgressReporter(self.dispatcher, window=config.PROGRESS_REPORT_WINDOW)
        self.enrollment_cache = ExpiringCache(self._load_enrollments, enrollment_cache_ttl)

        self._scan_lock = threading.Lock()
        self._report_lock = threading.Lock()
        self.last_scan: Optional[ScanReport] = None

    @property
    def state(self) -> str:
        return STATE_SCANNING if self._scan_lock.locked() else STATE_IDLE

    def _load_enrollments(self, user_id: int) -> frozenset[int]:
        with self.session_factory() as db:
            return load_enrolled_course_ids(db, user_id)

    def run_assignment_scan(
        self,
        now: Optional[datetime] = None,
        lead_times: Optional[Iterable[int]] = None,
        triggered_by: str = "scheduler",
    ) -> ScanReport:
        now = now or self.clock()
        days = _validate_lead_times(lead_times) if lead_times is not None else self.lead_times
        report = ScanReport(triggered_by=triggered_by, started_at=now)

        if not self._scan_lock.acquire(blocking=False):
            logger.warning("Reminder scan requested by %s while another scan is running, skipping", triggered_by)
            report.skipped = True
            report.finished_at = self.clock()
            return report

        try:
            logger.info("Checking for assignment reminders (triggered by %s)...", triggered_by)
            self.enrollment_cache.expire()
            for lead_time_days in days:
                report.results.append(self._scan_lead_time(lead_time_days, now))
        finally:
            report.finished_at = self.clock()
            self.last_scan = report
            self._scan_lock.release()

        logger.info(
            "Reminder scan finished: %s sent, %s failed",
            report.total_sent,
            report.total_failed,
        )
        return report

    def _scan_lead_time(self, lead_time_days: int, now: datetime) -> LeadTimeResult:
        result = LeadTimeResult(lead_time_days=lead_time_days)
        # fresh session per lead time so a failed query cannot poison the next one
        with self.session_factory() as db:
            matcher = ReminderMatcher(
                SqlReminderSource(db, self.enrollment_cache),
                self.fallback_email,
                self.tz,
            )
            try:
                triples = matcher.match(lead_time_days, now)
            except Exception:
                logger.exception("Reminder matching failed for %s day(s) before deadline", lead_time_days)
                return result

        result.matched = len(triples)
        result.degraded = matcher.last_match_degraded
        logger.info("Found %s reminders for %s day(s) before deadline", result.matched, lead_time_days)

        for triple in triples:
            result.record(self.dispatcher.dispatch(triple, lead_time_days))
        return result

    def run_weekly_report(self, now: Optional[datetime] = None, triggered_by: str = "scheduler") -> ReportSummary:
        now = now or self.clock()
        if not self._report_lock.acquire(blocking=False):
            logger.warning("Weekly report requested by %s while another is running, skipping", triggered_by)
            return ReportSummary(triggered_by=triggered_by, skipped=True)
        try:
            logger.info("Sending weekly progress reports (triggered by %s)...", triggered_by)
            with self.session_factory() as db:
                return self.reporter.run(db, now, triggered_by)
        finally:
            self._report_lock.release()

    def send_test_email(
        self,
        to: str,
        requested_by: str,
        subject: Optional[str] = None,
        message: Optional[str] = None,
    ) -> DeliveryCheckResult:
        """
        Send a one-off message through the reminder transport to check delivery.

        Unlike reminder sends, a failure here raises EmailDeliveryError so the
        caller can report it.
        """
        sent_at = self.clock()
        subject = subject or delivery_check_subject()
        html = render_delivery_check_html(to, requested_by, sent_at, message, self.tz)
        self.dispatcher.transport.send(to, subject, html)
        logger.info("Test email sent to %s (requested by %s)", to, requested_by)
        return DeliveryCheckResult(sent_to=to, subject=subject, timestamp=sent_at)


def _validate_lead_times(lead_times: Iterable[int]) -> tuple[int, ...]:
    values = list(lead_times)
    for value in values:
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            raise ValueError(f"lead times must be positive integers, got {value!r}")
    return tuple(sorted(set(values)))


def build_reminder_service(
    session_factory: Callable[[], Session],
    transport: Optional[EmailTransport] = None,
    event_publisher: Optional[EventPublisher] = None,
) -> ReminderService:
    """Wire a ReminderService from app.core.config."""
    if transport is None:
        transport = SmtpTransport(
            host=config.EMAIL_HOST,
            port=config.EMAIL_PORT,
            from_address=config.EMAIL_FROM,
            username=config.EMAIL_USER,
            password=config.EMAIL_PASS,
            use_tls=config.EMAIL_USE_TLS,
            timeout=config.EMAIL_SEND_TIMEOUT,
        )
    ledger = SqlReminderLedger(session_factory) if config.REMINDER_DEDUP_ENABLED else None
    return ReminderService(
        session_factory,
        transport,
        lead_times=config.REMINDER_LEAD_TIMES,
        tz=ZoneInfo(config.REMINDER_TIMEZONE),
        fallback_email=config.REMINDER_FALLBACK_EMAIL,
        frontend_url=config.FRONTEND_URL,
        ledger=ledger,
        event_publisher=event_publisher,
        enrollment_cache_ttl=config.ENROLLMENT_CACHE_TTL_SECONDS,
    )
