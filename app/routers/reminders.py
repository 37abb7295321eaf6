import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from app.core.current_user import get_current_user
from app.core.deps import get_db, get_reminder_service
from app.core.permissions import require_instructor
from app.models.user import User
from app.reminders.mailer import EmailDeliveryError
from app.reminders.service import ReminderService
from app.reminders.types import normalize_lead_times
from app.schemas.reminder import (
    DeliveryCheckRead,
    DeliveryCheckRequest,
    ReminderSettingsRead,
    ReminderSettingsUpdate,
    ReminderTriggerRequest,
    ReportSummaryRead,
    ScanReportRead,
    SchedulerStatusRead,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _settings_for(user: User) -> ReminderSettingsRead:
    return ReminderSettingsRead(
        enabled=user.reminders_enabled,
        lead_times=sorted(normalize_lead_times(user.reminder_lead_times)),
    )


@router.get("/settings", response_model=ReminderSettingsRead)
def get_settings(current_user: User = Depends(get_current_user)):
    return _settings_for(current_user)


@router.put("/settings", response_model=ReminderSettingsRead)
def update_settings(
    payload: ReminderSettingsUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    if payload.enabled is not None:
        current_user.reminders_enabled = payload.enabled
    if payload.lead_times is not None:
        current_user.reminder_lead_times = payload.lead_times

    try:
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(current_user)
    return _settings_for(current_user)


@router.post("/trigger", response_model=ScanReportRead)
def trigger_reminders(
    payload: ReminderTriggerRequest | None = None,
    service: ReminderService = Depends(get_reminder_service),
    instructor: User = Depends(require_instructor),
):
    # same pipeline as the scheduled scan; caller is logged for audit
    logger.info("Manual reminder trigger by user_id=%s (%s)", instructor.id, instructor.email)

    lead_times = payload.lead_times if payload else None
    report = service.run_assignment_scan(
        lead_times=lead_times,
        triggered_by=f"user:{instructor.id}",
    )
    if report.skipped:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="A reminder scan is already running",
        )
    return ScanReportRead.model_validate(report)


@router.post("/weekly-report/trigger", response_model=ReportSummaryRead)
def trigger_weekly_report(
    service: ReminderService = Depends(get_reminder_service),
    instructor: User = Depends(require_instructor),
):
    logger.info("Manual weekly report trigger by user_id=%s (%s)", instructor.id, instructor.email)

    summary = service.run_weekly_report(triggered_by=f"user:{instructor.id}")
    if summary.skipped:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="A weekly report is already running",
        )
    return ReportSummaryRead.model_validate(summary)


@router.get("/scheduler", response_model=SchedulerStatusRead)
def scheduler_status(
    request: Request,
    service: ReminderService = Depends(get_reminder_service),
    instructor: User = Depends(require_instructor),
):
    scheduler = getattr(request.app.state, "reminder_scheduler", None)
    if scheduler is None:
        return {"is_running": False, "scan_state": service.state, "jobs": []}
    return scheduler.get_status()


@router.post(
    "/test-email",
    response_model=DeliveryCheckRead,
    responses={
        403: {"description": "Only instructors may send to another address"},
        502: {"description": "Email transport rejected the message"},
    },
)
def send_test_email(
    payload: DeliveryCheckRequest | None = None,
    service: ReminderService = Depends(get_reminder_service),
    current_user: User = Depends(get_current_user),
):
    payload = payload or DeliveryCheckRequest()
    to = (payload.email or current_user.email).lower()
    if to != current_user.email.lower() and current_user.role not in ("instructor", "admin"):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Instructor role required to email another address",
        )

    logger.info("Test email requested by user_id=%s (%s) to %s", current_user.id, current_user.email, to)

    try:
        result = service.send_test_email(
            to,
            requested_by=current_user.full_name or current_user.email,
            subject=payload.subject,
            message=payload.message,
        )
    except EmailDeliveryError as exc:
        logger.warning("Test email to %s failed: %s", to, exc)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Email delivery failed: {exc}",
        )
    return DeliveryCheckRead.model_validate(result)
