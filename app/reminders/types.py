from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Optional

from app.core.config import DEFAULT_LEAD_TIMES

CHANNEL_EMAIL = "email"
CHANNEL_REALTIME = "realtime"

STATUS_SENT = "sent"
STATUS_FAILED = "failed"
STATUS_SKIPPED = "skipped"


def normalize_lead_times(raw) -> frozenset[int]:
    """
    Clean a stored lead-time list.

    Missing or non-list values fall back to the defaults; entries that are
    not positive integers are dropped.
    """
    if not isinstance(raw, (list, tuple, set, frozenset)):
        return frozenset(DEFAULT_LEAD_TIMES)
    return frozenset(
        value for value in raw
        if isinstance(value, int) and not isinstance(value, bool) and value > 0
    )


@dataclass(frozen=True)
class ReminderPreference:
    enabled: bool = True
    lead_times: frozenset[int] = frozenset(DEFAULT_LEAD_TIMES)

    @classmethod
    def from_stored(cls, enabled, lead_times) -> "ReminderPreference":
        return cls(enabled=bool(enabled), lead_times=normalize_lead_times(lead_times))

    def wants(self, lead_time_days: int) -> bool:
        return self.enabled and lead_time_days in self.lead_times


@dataclass(frozen=True)
class CourseInfo:
    id: int
    title: str


@dataclass(frozen=True)
class AssignmentInfo:
    id: int
    course_id: int
    title: str
    due_at: datetime
    max_score: float
    kind: str = "assignment"


@dataclass(frozen=True)
class Recipient:
    id: int
    email: str
    full_name: Optional[str]
    preference: ReminderPreference = field(default_factory=ReminderPreference)

    @property
    def display_name(self) -> str:
        return self.full_name or self.email


@dataclass(frozen=True)
class DueAssignment:
    """An assignment together with the course it belongs to."""

    assignment: AssignmentInfo
    course: CourseInfo


@dataclass(frozen=True)
class ReminderTriple:
    user: Recipient
    course: CourseInfo
    assignment: AssignmentInfo
    synthetic: bool = False  # produced by the degraded-mode dataset


@dataclass(frozen=True)
class ReminderKey:
    user_id: int
    assignment_id: int
    lead_time_days: int
    channel: str = CHANNEL_EMAIL


@dataclass
class DeliveryAttempt:
    recipient: str
    subject: str
    status: str
    key: Optional[ReminderKey] = None  # None for mail outside the reminder ledger
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == STATUS_SENT


@dataclass
class LeadTimeResult:
    lead_time_days: int
    matched: int = 0
    sent: int = 0
    failed: int = 0
    skipped: int = 0
    degraded: bool = False

    def record(self, attempts: Iterable[DeliveryAttempt]) -> None:
        for attempt in attempts:
            if attempt.status == STATUS_SENT:
                self.sent += 1
            elif attempt.status == STATUS_FAILED:
                self.failed += 1
            else:
                self.skipped += 1


@dataclass
class ScanReport:
    triggered_by: str
    started_at: datetime
    finished_at: Optional[datetime] = None
    skipped: bool = False  # another scan was already running
    results: list[LeadTimeResult] = field(default_factory=list)

    @property
    def total_sent(self) -> int:
        return sum(r.sent for r in self.results)

    @property
    def total_failed(self) -> int:
        return sum(r.failed for r in self.results)


@dataclass
class ReportSummary:
    triggered_by: str
    recipients: int = 0
    sent: int = 0
    failed: int = 0
    skipped: bool = False

    def record(self, attempt: DeliveryAttempt) -> None:
        if attempt.status == STATUS_SENT:
            self.sent += 1
        elif attempt.status == STATUS_FAILED:
            self.failed += 1


@dataclass
class DeliveryCheckResult:
    sent_to: str
    subject: str
    timestamp: datetime
