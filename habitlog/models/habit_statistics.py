"""
HabitDailyStatistics — derived cache written by calculate_habit_statistics.

One row per (habit_id, stat_date); a second run on the same day refreshes
that row. The habit_statistics view reads the newest row per habit.
"""
from datetime import datetime, date
from decimal import Decimal
from sqlalchemy import Integer, String, Numeric, DateTime, Date, ForeignKey, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from habitlog.db.base import Base
from habitlog.models.ids import new_id


class HabitDailyStatistics(Base):
    __tablename__ = "habit_daily_statistics"
    __table_args__ = (
        UniqueConstraint("habit_id", "stat_date", name="uq_habit_statistics_habit_date"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    habit_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("habits.id"), nullable=False, index=True
    )
    stat_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    achieved_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    achievement_rate: Mapped[Decimal] = mapped_column(
        Numeric(5, 2), nullable=False, default=Decimal("0"),
        comment="0.00–100.00 percent",
    )
    calculated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class StatisticsRun(Base):
    """Audit of recompute invocations; backs the one-manual-run-per-day rule."""

    __tablename__ = "statistics_runs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    trigger: Mapped[str] = mapped_column(
        String(16), nullable=False,
        comment='"manual" or "scheduled"',
    )
    run_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    habits_processed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
