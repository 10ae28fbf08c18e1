"""
HabitLog — completion status of one habit on one calendar day.

Sparse: a row exists only once the status moved away from the implicit
"unchecked" default. The unique constraint enforces at most one row per
(habit_id, date); later changes update that row in place.
"""
import datetime as dt
from sqlalchemy import String, Text, DateTime, Date, ForeignKey, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column
import enum

from habitlog.db.base import Base
from habitlog.models.ids import new_id


class LogStatus(str, enum.Enum):
    unchecked = "unchecked"
    achieved = "achieved"
    not_achieved = "not_achieved"


class HabitLog(Base):
    __tablename__ = "habit_logs"
    __table_args__ = (
        UniqueConstraint("habit_id", "date", name="uq_habit_logs_habit_date"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    habit_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("habits.id"), nullable=False, index=True
    )
    date: Mapped[dt.date] = mapped_column(Date, nullable=False, index=True)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=LogStatus.unchecked.value
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
