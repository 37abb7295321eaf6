from sqlalchemy import JSON, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base_class import Base


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    email: Mapped[str] = mapped_column(
        String(255), unique=True, index=True, nullable=False
    )
    full_name: Mapped[str | None] = mapped_column(String(255))
    hashed_password: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(50), nullable=False, default="student")

    # Reminder preferences. NULL lead times means "use the defaults".
    reminders_enabled: Mapped[bool] = mapped_column(nullable=False, default=True)
    reminder_lead_times: Mapped[list | None] = mapped_column(JSON, nullable=True, default=lambda: [1, 3, 7])

    learning_streak: Mapped[int] = mapped_column(nullable=False, default=0)

    enrollments = relationship(
        "Enrollment", back_populates="student", cascade="all, delete-orphan"
    )

    submissions = relationship(
        "Submission", back_populates="student", cascade="all, delete-orphan"
    )

    progress_entries = relationship(
        "CourseProgress", back_populates="user", cascade="all, delete-orphan"
    )
