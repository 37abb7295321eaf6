import os
from datetime import timedelta


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int_list(name: str, default: str) -> tuple[int, ...]:
    raw = os.getenv(name, default)
    return tuple(sorted({int(part) for part in raw.split(",") if part.strip()}))


# DEV defaults; every value can be overridden from the environment.
SECRET_KEY = os.getenv("SECRET_KEY", "change-me-in-production")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE = timedelta(minutes=int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60")))

DATABASE_URL = os.getenv("DATABASE_URL")  # None -> sqlite file next to the project

# Email transport
EMAIL_HOST = os.getenv("EMAIL_HOST", "localhost")
EMAIL_PORT = int(os.getenv("EMAIL_PORT", "587"))
EMAIL_USER = os.getenv("EMAIL_USER")
EMAIL_PASS = os.getenv("EMAIL_PASS")
EMAIL_FROM = os.getenv("EMAIL_FROM", "no-reply@micro-lms.local")
EMAIL_USE_TLS = _env_bool("EMAIL_USE_TLS", True)
EMAIL_SEND_TIMEOUT = float(os.getenv("EMAIL_SEND_TIMEOUT", "10"))  # seconds per SMTP socket operation

FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")

# Reminder scheduling
DEFAULT_LEAD_TIMES = (1, 3, 7)
REMINDER_LEAD_TIMES = _env_int_list("REMINDER_LEAD_TIMES", "1,3,7")
REMINDER_TIMEZONE = os.getenv("REMINDER_TIMEZONE", "UTC")
REMINDER_CRON_HOUR = int(os.getenv("REMINDER_CRON_HOUR", "7"))
REMINDER_CRON_MINUTE = int(os.getenv("REMINDER_CRON_MINUTE", "22"))
# set to run the scan on a fixed interval instead of the daily cron (dev only)
REMINDER_INTERVAL_SECONDS = int(os.getenv("REMINDER_INTERVAL_SECONDS", "0")) or None
WEEKLY_REPORT_DAY = os.getenv("WEEKLY_REPORT_DAY", "sun")
WEEKLY_REPORT_HOUR = int(os.getenv("WEEKLY_REPORT_HOUR", "18"))
REMINDER_FALLBACK_EMAIL = os.getenv("REMINDER_FALLBACK_EMAIL") or EMAIL_USER or "student@example.com"
REMINDER_DEDUP_ENABLED = _env_bool("REMINDER_DEDUP_ENABLED", True)
ENROLLMENT_CACHE_TTL_SECONDS = float(os.getenv("ENROLLMENT_CACHE_TTL_SECONDS", "300"))
SCHEDULER_ENABLED = _env_bool("SCHEDULER_ENABLED", False)

# Weekly report looks back this far for course activity
PROGRESS_REPORT_WINDOW = timedelta(days=7)
