"""
Server-side procedures of the in-process backend.

calculate_habit_statistics
--------------------------
For every active habit in scope:
  total_days    = days from start_date to `today` inclusive (0 if not started)
  achieved_days = logs with status "achieved" in that range
  rate          = achieved / total * 100, rounded half-up to 2 decimals

One statistics row per (habit, today) is upserted, so running twice on the
same day refreshes instead of duplicating.

Policy: a user may trigger at most `manual_limit` manual runs per calendar
day; service-role runs (user_id None, the nightly schedule) are unlimited.
Every run is recorded in `statistics_runs`.
"""
from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from habitlog.models.habit import Habit
from habitlog.models.habit_log import HabitLog, LogStatus
from habitlog.models.habit_statistics import HabitDailyStatistics, StatisticsRun


class ProcedureRaised(Exception):
    """Error raised inside a procedure; its message is user-facing."""


class RunTrigger:
    MANUAL    = "manual"
    SCHEDULED = "scheduled"


def _rate(achieved: int, total: int) -> Decimal:
    if total <= 0:
        return Decimal("0.00")
    raw = Decimal(achieved) * Decimal(100) / Decimal(total)
    return raw.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def _manual_runs_today(db: Session, user_id: str, today: date) -> int:
    return (
        db.query(func.count(StatisticsRun.id))
        .filter(
            StatisticsRun.user_id == user_id,
            StatisticsRun.trigger == RunTrigger.MANUAL,
            StatisticsRun.run_date == today,
        )
        .scalar()
        or 0
    )


def _count_achieved(db: Session, habit: Habit, today: date) -> int:
    return (
        db.query(func.count(HabitLog.id))
        .filter(
            HabitLog.habit_id == habit.id,
            HabitLog.status == LogStatus.achieved.value,
            HabitLog.date >= habit.start_date,
            HabitLog.date <= today,
        )
        .scalar()
        or 0
    )


def _upsert_statistics(
    db: Session, habit: Habit, today: date, achieved: int, total: int
) -> None:
    row = (
        db.query(HabitDailyStatistics)
        .filter(
            HabitDailyStatistics.habit_id == habit.id,
            HabitDailyStatistics.stat_date == today,
        )
        .first()
    )
    if row is None:
        row = HabitDailyStatistics(habit_id=habit.id, stat_date=today)
        db.add(row)
    row.achieved_days = achieved
    row.total_days = total
    row.achievement_rate = _rate(achieved, total)
    row.calculated_at = datetime.now(tz=timezone.utc)


def calculate_habit_statistics(
    db: Session,
    user_id: Optional[str],
    today: date,
    manual_limit: int = 1,
) -> int:
    """Recompute statistics for every active habit in scope. Returns habits processed."""
    trigger = RunTrigger.SCHEDULED if user_id is None else RunTrigger.MANUAL
    if trigger == RunTrigger.MANUAL and _manual_runs_today(db, user_id, today) >= manual_limit:
        raise ProcedureRaised("Statistics can only be recalculated manually once per day.")

    q = db.query(Habit).filter(Habit.is_archived == False)  # noqa: E712
    if user_id is not None:
        q = q.filter(Habit.user_id == user_id)
    habits = q.all()

    for habit in habits:
        if habit.start_date > today:
            achieved, total = 0, 0
        else:
            total = (today - habit.start_date).days + 1
            achieved = _count_achieved(db, habit, today)
        _upsert_statistics(db, habit, today, achieved, total)

    db.add(StatisticsRun(
        user_id=user_id,
        trigger=trigger,
        run_date=today,
        habits_processed=len(habits),
    ))
    db.commit()
    return len(habits)
