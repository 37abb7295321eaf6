from sqlalchemy import Column, DateTime, Float, ForeignKey, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import relationship

from app.db.base_class import Base

PROGRESS_STATUSES = ("enrolled", "in_progress", "completed", "dropped")


class CourseProgress(Base):
    __tablename__ = "course_progress"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    course_id = Column(Integer, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False, index=True)

    overall_progress = Column(Float, nullable=False, default=0)  # percent, 0-100
    status = Column(String(20), nullable=False, default="enrolled")
    last_accessed_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    __table_args__ = (
        UniqueConstraint("user_id", "course_id", name="uq_course_progress_user_course"),
    )

    user = relationship("User", back_populates="progress_entries")
    course = relationship("Course", back_populates="progress_entries")
