# import every model here so Base.metadata sees all tables (used by tests and alembic)
from app.db.base_class import Base  # noqa: F401
from app.models.assignment import Assignment  # noqa: F401
from app.models.course import Course  # noqa: F401
from app.models.enrollment import Enrollment  # noqa: F401
from app.models.progress import CourseProgress  # noqa: F401
from app.models.sent_reminder import SentReminder  # noqa: F401
from app.models.submission import Submission  # noqa: F401
from app.models.user import User  # noqa: F401
