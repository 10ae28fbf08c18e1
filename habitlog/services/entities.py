"""
Domain entities (plain dataclasses — no ORM, no Pydantic).

The gateway converts validated rows into these immediately; everything
from reconciliation upward works with these types only.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Optional

from habitlog.models.habit import FrequencyType
from habitlog.models.habit_log import LogStatus
from habitlog.schemas.rows import (
    HabitLogRow,
    HabitRow,
    HabitStatisticsRow,
    HabitTemplateRow,
)


@dataclass(frozen=True)
class Frequency:
    type: FrequencyType
    value: int = 1
    days: tuple[int, ...] = ()
    month_day: Optional[int] = None


@dataclass(frozen=True)
class Habit:
    id: str
    user_id: str
    name: str
    frequency: Frequency
    start_date: date
    icon: Optional[str] = None
    color: Optional[str] = None
    is_archived: bool = False
    template_id: Optional[str] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: HabitRow) -> "Habit":
        return cls(
            id=row.id,
            user_id=row.user_id,
            name=row.name,
            frequency=Frequency(
                type=row.frequency_type,
                value=row.frequency_value,
                days=tuple(row.frequency_days or ()),
                month_day=row.frequency_month_day,
            ),
            start_date=row.start_date,
            icon=row.icon,
            color=row.color,
            is_archived=row.is_archived,
            template_id=row.template_id,
            created_at=row.created_at,
        )


@dataclass(frozen=True)
class HabitLogEntry:
    """
    One cell of a reconciled window. `id is None` marks a synthesized
    default: the date has no persisted row yet.
    """
    habit_id: str
    date: date
    status: LogStatus = LogStatus.unchecked
    notes: str = ""
    id: Optional[str] = None

    @property
    def is_persisted(self) -> bool:
        return self.id is not None

    @classmethod
    def default(cls, habit_id: str, day: date) -> "HabitLogEntry":
        return cls(habit_id=habit_id, date=day)

    @classmethod
    def from_row(cls, row: HabitLogRow) -> "HabitLogEntry":
        return cls(
            id=row.id,
            habit_id=row.habit_id,
            date=row.date,
            status=row.status,
            notes=row.notes,
        )


@dataclass(frozen=True)
class HabitTemplate:
    id: str
    name: str
    default_frequency_type: FrequencyType
    icon: Optional[str] = None

    @classmethod
    def from_row(cls, row: HabitTemplateRow) -> "HabitTemplate":
        return cls(
            id=row.id,
            name=row.name,
            icon=row.icon,
            default_frequency_type=row.default_frequency_type,
        )


@dataclass(frozen=True)
class HabitStatistics:
    habit_id: str
    name: str
    achieved_days: int
    total_days: int
    achievement_rate: float   # percent, 0–100
    calculated_at: Optional[datetime] = None
    start_date: Optional[date] = None

    @classmethod
    def from_row(cls, row: HabitStatisticsRow) -> "HabitStatistics":
        return cls(
            habit_id=row.id,
            name=row.name,
            achieved_days=row.achieved_days,
            total_days=row.total_days,
            achievement_rate=row.achievement_rate,
            calculated_at=row.calculated_at,
            start_date=row.start_date,
        )


@dataclass
class ChangeEvent:
    """A row-level change pushed by the backend to subscribers."""
    table: str
    event_type: str              # "INSERT" | "UPDATE" | "DELETE"
    new: dict = field(default_factory=dict)
    old: dict = field(default_factory=dict)
