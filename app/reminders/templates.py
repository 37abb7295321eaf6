from datetime import datetime, timezone, tzinfo
from html import escape
from typing import Optional

from app.reminders.types import AssignmentInfo, CourseInfo, Recipient

PLATFORM_NAME = "Micro LMS"

_BASE_STYLE = """
    body { font-family: Arial, sans-serif; line-height: 1.6; color: #333; }
    .container { max-width: 600px; margin: 0 auto; padding: 20px; }
    .header { color: white; padding: 30px 20px; text-align: center; border-radius: 10px 10px 0 0; }
    .content { background: #f9f9f9; padding: 30px 20px; border-radius: 0 0 10px 10px; }
"""


def urgency_text(lead_time_days: int) -> str:
    return "tomorrow" if lead_time_days == 1 else f"in {lead_time_days} days"


def reminder_subject(assignment_title: str, lead_time_days: int) -> str:
    if lead_time_days == 1:
        return f"Assignment Due Tomorrow: {assignment_title}"
    return f"Assignment Due in {lead_time_days} Days: {assignment_title}"


def _format_points(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else f"{value:g}"


def render_reminder_html(
    user: Recipient,
    course: CourseInfo,
    assignment: AssignmentInfo,
    lead_time_days: int,
    frontend_url: str,
    tz: tzinfo = timezone.utc,
) -> str:
    due_local = assignment.due_at.astimezone(tz)
    link = f"{frontend_url.rstrip('/')}/courses/{course.id}/assignments"

    return f"""<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <title>Assignment Reminder</title>
    <style>{_BASE_STYLE}
    .header {{ background: #e74c3c; }}
    .assignment-info {{ background: white; padding: 20px; border-radius: 8px; margin: 20px 0; border-left: 4px solid #e74c3c; }}
    .urgent {{ color: #e74c3c; font-weight: bold; font-size: 18px; }}
    </style>
</head>
<body>
    <div class="container">
        <div class="header">
            <h1>Assignment Reminder</h1>
            <p>Don't miss your deadline!</p>
        </div>
        <div class="content">
            <h2>Hello {escape(user.display_name)}!</h2>
            <p class="urgent">Your assignment is due {urgency_text(lead_time_days)}!</p>
            <div class="assignment-info">
                <h3>{escape(assignment.title)}</h3>
                <p><strong>Course:</strong> {escape(course.title)}</p>
                <p><strong>Due Date:</strong> {due_local.strftime("%Y-%m-%d %H:%M %Z")}</p>
                <p><strong>Type:</strong> {escape(assignment.kind)}</p>
                <p><strong>Points:</strong> {_format_points(assignment.max_score)}</p>
            </div>
            <p>Submit early to avoid last-minute technical issues.</p>
            <a href="{escape(link, quote=True)}">Submit Assignment Now</a>
            <p>The {PLATFORM_NAME} Team</p>
        </div>
    </div>
</body>
</html>
"""


def progress_report_subject() -> str:
    return f"Your Weekly Learning Progress - {PLATFORM_NAME}"


def render_progress_report_html(user_name: str, learning_streak: int, courses: list[dict]) -> str:
    """courses: dicts with title, progress (0-100) and status"""
    rows = "".join(
        f"""
            <div class="course-progress">
                <h3>{escape(c["title"])}</h3>
                <div class="progress-bar"><div class="progress-fill" style="width: {int(c["progress"])}%"></div></div>
                <p>Progress: {int(c["progress"])}% | Status: {escape(c["status"].replace("_", " ").capitalize())}</p>
            </div>"""
        for c in courses
    )

    return f"""<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <title>Weekly Progress Report - {PLATFORM_NAME}</title>
    <style>{_BASE_STYLE}
    .header {{ background: #667eea; }}
    .course-progress {{ background: white; padding: 20px; margin: 15px 0; border-radius: 8px; border-left: 4px solid #667eea; }}
    .progress-bar {{ background: #e0e0e0; height: 20px; border-radius: 10px; overflow: hidden; margin: 10px 0; }}
    .progress-fill {{ background: #667eea; height: 100%; }}
    </style>
</head>
<body>
    <div class="container">
        <div class="header">
            <h1>Weekly Progress Report</h1>
            <p>{PLATFORM_NAME}</p>
        </div>
        <div class="content">
            <h2>Great job, {escape(user_name)}!</h2>
            <p>Day streak: <strong>{learning_streak}</strong> | Active courses: <strong>{len(courses)}</strong></p>
            <h3>Your Course Progress:</h3>{rows}
            <p>Keep up the great work!</p>
        </div>
    </div>
</body>
</html>
"""


def delivery_check_subject() -> str:
    return f"{PLATFORM_NAME} Email Test"


def render_delivery_check_html(
    sent_to: str,
    requested_by: str,
    sent_at: datetime,
    message: Optional[str] = None,
    tz: tzinfo = timezone.utc,
) -> str:
    message = message or f"This is a test email from {PLATFORM_NAME}!"
    return f"""<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <title>Email Test - {PLATFORM_NAME}</title>
    <style>{_BASE_STYLE}
    .header {{ background: #2c7be5; }}
    .info {{ background: #d1ecf1; padding: 15px; border-radius: 5px; color: #0c5460; margin: 20px 0; }}
    </style>
</head>
<body>
    <div class="container">
        <div class="header">
            <h1>Email System Test</h1>
            <p>{PLATFORM_NAME}</p>
        </div>
        <div class="content">
            <p>Your {PLATFORM_NAME} email system is working correctly.</p>
            <div class="info">
                <p><strong>Sent to:</strong> {escape(sent_to)}</p>
                <p><strong>Sent by:</strong> {escape(requested_by)}</p>
                <p><strong>Timestamp:</strong> {sent_at.astimezone(tz).strftime("%Y-%m-%d %H:%M %Z")}</p>
            </div>
            <p>{escape(message)}</p>
            <p>Assignment reminders and weekly progress reports will be delivered the same way.</p>
        </div>
    </div>
</body>
</html>
"""
