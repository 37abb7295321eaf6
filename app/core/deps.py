from fastapi import HTTPException, Request, status

from app.db.session import SessionLocal
from app.reminders.service import ReminderService


# every request that needs DB will get a fresh session, and it will always close.
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# the reminder service is created once at startup and kept on app.state
def get_reminder_service(request: Request) -> ReminderService:
    service = getattr(request.app.state, "reminder_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Reminder service not initialised",
        )
    return service
