from datetime import datetime
from typing import Annotated, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

LeadTime = Annotated[int, Field(ge=1, le=365)]


class ReminderSettingsRead(BaseModel):
    enabled: bool
    lead_times: list[int]


class ReminderSettingsUpdate(BaseModel):
    enabled: Optional[bool] = None
    lead_times: Optional[list[LeadTime]] = None

    @field_validator("lead_times")
    @classmethod
    def dedupe_and_sort(cls, v):
        if v is None:
            return v
        return sorted(set(v))


class ReminderTriggerRequest(BaseModel):
    lead_times: Optional[list[LeadTime]] = Field(default=None, min_length=1)


class LeadTimeResultRead(BaseModel):
    lead_time_days: int
    matched: int
    sent: int
    failed: int
    skipped: int
    degraded: bool

    class Config:
        from_attributes = True


class ScanReportRead(BaseModel):
    triggered_by: str
    started_at: datetime
    finished_at: Optional[datetime] = None
    skipped: bool
    total_sent: int
    total_failed: int
    results: list[LeadTimeResultRead]

    class Config:
        from_attributes = True


class ReportSummaryRead(BaseModel):
    triggered_by: str
    recipients: int
    sent: int
    failed: int
    skipped: bool

    class Config:
        from_attributes = True


class SchedulerJobRead(BaseModel):
    id: str
    name: str
    next_run_time: Optional[str] = None


class SchedulerStatusRead(BaseModel):
    is_running: bool
    scan_state: str
    jobs: list[SchedulerJobRead]


class DeliveryCheckRequest(BaseModel):
    email: Optional[EmailStr] = None  # defaults to the caller
    subject: Optional[str] = Field(default=None, max_length=200)
    message: Optional[str] = Field(default=None, max_length=2000)


class DeliveryCheckRead(BaseModel):
    sent_to: str
    subject: str
    timestamp: datetime

    class Config:
        from_attributes = True
