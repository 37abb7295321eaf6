import os
from datetime import datetime, timezone
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.core.deps import get_db
from app.core.security import hash_password
from app.db.base import Base
from app.main import app
from app.models.assignment import Assignment
from app.models.course import Course
from app.models.enrollment import Enrollment
from app.models.progress import CourseProgress
from app.models.sent_reminder import SentReminder
from app.models.submission import Submission
from app.models.user import User
from app.reminders.mailer import EmailDeliveryError
from app.reminders.service import ReminderService

TEST_DB_FILE = "test_micro_lms.db"
TEST_DB_URL = f"sqlite:///./{TEST_DB_FILE}"

engine = create_engine(
    TEST_DB_URL,
    connect_args={"check_same_thread": False},
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# fixed "now" for every scan in the suite (a Tuesday morning)
NOW = datetime(2026, 3, 10, 9, 30, tzinfo=timezone.utc)

PASSWORD = "password123"
PASSWORD_HASH = hash_password(PASSWORD)


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


class RecordingTransport:
    """Email transport double; raises for addresses listed in fail_for."""

    def __init__(self, fail_for=()):
        self.sent = []
        self.fail_for = set(fail_for)

    def send(self, to, subject, html_body):
        if to in self.fail_for:
            raise EmailDeliveryError(f"mailbox unavailable: {to}")
        self.sent.append({"to": to, "subject": subject, "html": html_body})

    @property
    def recipients(self):
        return [m["to"] for m in self.sent]


@pytest.fixture(scope="session", autouse=True)
def setup_test_db():
    """Create a fresh schema once for the whole test session."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)
    engine.dispose()
    if os.path.exists(TEST_DB_FILE):
        os.remove(TEST_DB_FILE)


@pytest.fixture(autouse=True)
def seed_data():
    """
    Seed a clean dataset for each test:

    - instructor1 teaches CS5004 (not enrolled)
    - student1, student4: reminders on, default lead times {1, 3, 7}
    - student2: reminders on, lead times {3, 7}
    - student3: reminders off
    - outsider: reminders on but not enrolled in CS5004
    """
    db = TestingSessionLocal()
    try:
        # Clear tables (child -> parent)
        for model in (SentReminder, CourseProgress, Submission, Enrollment, Assignment, Course, User):
            db.query(model).delete()
        db.commit()

        def user(email, name, role="student", **prefs):
            return User(email=email, full_name=name, role=role, hashed_password=PASSWORD_HASH, **prefs)

        instructor = user("instructor1@example.com", "Instructor One", role="instructor")
        student1 = user("student1@example.com", "Student One")
        student2 = user("student2@example.com", "Student Two", reminder_lead_times=[3, 7])
        student3 = user("student3@example.com", "Student Three", reminders_enabled=False)
        student4 = user("student4@example.com", "Student Four")
        outsider = user("outsider@example.com", "Out Sider")
        db.add_all([instructor, student1, student2, student3, student4, outsider])
        db.commit()

        course = Course(title="CS5004", instructor_id=instructor.id)
        db.add(course)
        db.commit()

        for s in (student1, student2, student3, student4):
            db.add(Enrollment(course_id=course.id, student_id=s.id))
        db.commit()

        ids = SimpleNamespace(
            instructor=instructor.id,
            student1=student1.id,
            student2=student2.id,
            student3=student3.id,
            student4=student4.id,
            outsider=outsider.id,
            course=course.id,
        )
        yield ids
    finally:
        db.close()


@pytest.fixture()
def db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def add_assignment(seed_data):
    """Factory: add_assignment(due_at, title="HW1", **fields) -> assignment id."""

    def _add(due_at, title="HW1", **fields):
        fields.setdefault("course_id", seed_data.course)
        fields.setdefault("max_score", 100)
        session = TestingSessionLocal()
        try:
            assignment = Assignment(title=title, due_at=due_at, **fields)
            session.add(assignment)
            session.commit()
            return assignment.id
        finally:
            session.close()

    return _add


@pytest.fixture()
def add_submission():
    def _add(student_id, assignment_id):
        session = TestingSessionLocal()
        try:
            session.add(Submission(student_id=student_id, assignment_id=assignment_id, content="done", submitted_at=NOW))
            session.commit()
        finally:
            session.close()

    return _add


@pytest.fixture()
def transport():
    return RecordingTransport()


@pytest.fixture()
def session_factory():
    return TestingSessionLocal


@pytest.fixture()
def make_service(transport):
    """Factory for ReminderService against the test DB; kwargs override defaults."""

    def _make(**overrides):
        options = dict(
            lead_times=(1, 3, 7),
            fallback_email="fallback@example.com",
            frontend_url="http://lms.test",
            clock=lambda: NOW,
        )
        options.update(overrides)
        session_factory = options.pop("session_factory", TestingSessionLocal)
        return ReminderService(session_factory, options.pop("transport", transport), **options)

    return _make


@pytest.fixture()
def reminder_service(make_service):
    return make_service()


@pytest.fixture()
def client(reminder_service):
    """Test client that uses the test DB session and the test reminder service."""
    app.dependency_overrides[get_db] = override_get_db
    app.state.reminder_service = reminder_service
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
    app.state.reminder_service = None
