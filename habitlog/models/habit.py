from datetime import datetime, date
from sqlalchemy import Integer, String, Boolean, DateTime, Date, JSON, ForeignKey, func
from sqlalchemy.orm import Mapped, mapped_column
import enum

from habitlog.db.base import Base
from habitlog.models.ids import new_id


class FrequencyType(str, enum.Enum):
    daily = "daily"
    weekly = "weekly"
    monthly = "monthly"


class Habit(Base):
    """
    A user's recurring habit. Archived instead of deleted so its logs and
    statistics remain readable.

    Frequency parameters:
      daily   — frequency_value = every N days
      weekly  — frequency_days  = ISO weekdays (1 = Monday … 7 = Sunday)
      monthly — frequency_month_day = day of month
    """

    __tablename__ = "habits"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    template_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("habit_templates.id"), nullable=True
    )
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    icon: Mapped[str | None] = mapped_column(String(64), nullable=True)
    color: Mapped[str | None] = mapped_column(String(32), nullable=True)
    frequency_type: Mapped[str] = mapped_column(
        String(16), nullable=False, default=FrequencyType.daily.value
    )
    frequency_value: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    frequency_days: Mapped[list | None] = mapped_column(JSON, nullable=True)
    frequency_month_day: Mapped[int | None] = mapped_column(Integer, nullable=True)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    is_archived: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
