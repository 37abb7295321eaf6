from sqlalchemy import Column, DateTime, Integer, String, UniqueConstraint, func

from app.db.base_class import Base


class SentReminder(Base):
    """One row per reminder already delivered on a channel.

    No foreign keys: degraded-mode reminders use synthetic ids that never
    match real rows.
    """

    __tablename__ = "sent_reminders"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, nullable=False, index=True)
    assignment_id = Column(Integer, nullable=False, index=True)
    lead_time_days = Column(Integer, nullable=False)
    channel = Column(String(20), nullable=False, default="email")

    sent_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "user_id", "assignment_id", "lead_time_days", "channel",
            name="uq_sent_reminder_key",
        ),
    )
