import enum
import uuid
import datetime as dt
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import Date, DateTime, ForeignKey, Index, Integer, Numeric, String, Text, Time, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db import Base, JSONType


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionStatus(str, enum.Enum):
    SCHEDULED = "scheduled"
    ONGOING = "ongoing"
    COMPLETED = "completed"
    CANCELED = "canceled"


TERMINAL_STATUSES = {SessionStatus.COMPLETED.value, SessionStatus.CANCELED.value}


class TutoringSession(Base):
    __tablename__ = "tutoring_sessions"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    tutor_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("tutor_profiles.user_id"), nullable=False)
    student_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    title: Mapped[str | None] = mapped_column(String(200), nullable=True)

    status: Mapped[str] = mapped_column(String(20), default=SessionStatus.SCHEDULED.value, nullable=False)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    # "HH:MM" start-of-hour strings, ascending; one slot per booked hour
    slots: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    meeting_urls: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)
    materials: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)
    cancel_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    ended_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    tutor = relationship("TutorProfile", backref="sessions")
    student = relationship("User", backref="booked_sessions")

    __mapper_args__ = {"version_id_col": version}
    __table_args__ = (
        Index("idx_tutoring_sessions_tutor_status", "tutor_id", "status"),
        Index("idx_tutoring_sessions_student", "student_id"),
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def __repr__(self):
        return f"<TutoringSession(id={self.id}, status={self.status}, date={self.date})>"


class BookedSlot(Base):
    """An hour of a tutor's calendar held by an active session."""

    __tablename__ = "booked_slots"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tutor_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("tutor_profiles.user_id"), nullable=False)
    session_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("tutoring_sessions.id"), nullable=False, index=True)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    start_time: Mapped[dt.time] = mapped_column(Time, nullable=False)

    __table_args__ = (UniqueConstraint("tutor_id", "date", "start_time", name="uq_booked_slot"),)
