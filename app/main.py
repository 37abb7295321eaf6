import logging
from zoneinfo import ZoneInfo

from fastapi import FastAPI

from app.core import config
from app.core.logging_middleware import LoggingMiddleware
from app.db.init_db import init_db
from app.db.session import SessionLocal
from app.reminders.scheduler import ReminderScheduler
from app.reminders.service import build_reminder_service
from app.routers.auth import router as auth_router
from app.routers.reminders import router as reminders_router

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(title="Micro LMS")

# Middleware
app.add_middleware(LoggingMiddleware)


# Health check
@app.get("/health")
def health():
    return {"status": "ok"}


# Startup event
@app.on_event("startup")
def on_startup():
    init_db()

    # tests may install their own service before startup
    if getattr(app.state, "reminder_service", None) is None:
        app.state.reminder_service = build_reminder_service(SessionLocal)

    app.state.reminder_scheduler = None
    if config.SCHEDULER_ENABLED:
        scheduler = ReminderScheduler(
            app.state.reminder_service,
            tz=ZoneInfo(config.REMINDER_TIMEZONE),
            reminder_hour=config.REMINDER_CRON_HOUR,
            reminder_minute=config.REMINDER_CRON_MINUTE,
            interval_seconds=config.REMINDER_INTERVAL_SECONDS,
            report_day_of_week=config.WEEKLY_REPORT_DAY,
            report_hour=config.WEEKLY_REPORT_HOUR,
        )
        scheduler.start()
        app.state.reminder_scheduler = scheduler
    else:
        logger.info("Email scheduler disabled (SCHEDULER_ENABLED is off)")


@app.on_event("shutdown")
def on_shutdown():
    scheduler = getattr(app.state, "reminder_scheduler", None)
    if scheduler is not None:
        scheduler.shutdown()


# Include routers
app.include_router(auth_router, prefix="/auth", tags=["auth"])
app.include_router(reminders_router, prefix="/reminders", tags=["reminders"])
