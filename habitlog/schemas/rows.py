"""
Row schemas for the data gateway boundary.

One schema per table or view, tagged with the resource name it belongs to.
Every row coming back from the backend is validated here and immediately
converted into a dataclass entity (see habitlog.services.entities);
nothing above the gateway handles raw dicts.

Insert/patch schemas serialize to the wire shape with `to_row()`: dates
as `YYYY-MM-DD`, statuses as their bare string value.
"""
from __future__ import annotations

import datetime as dt
from typing import Annotated, ClassVar, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, field_validator

from habitlog.core.config import settings
from habitlog.core.dates import format_day, parse_day
from habitlog.models.habit import FrequencyType
from habitlog.models.habit_log import LogStatus

HABITS = "habits"
HABIT_LOGS = "habit_logs"
HABIT_TEMPLATES = "habit_templates"
HABIT_STATISTICS = "habit_statistics"


class _Row(BaseModel):
    model_config = ConfigDict(from_attributes=True, extra="ignore")

    table: ClassVar[str]


def _day(value):
    return parse_day(value) if value is not None else value


def _check_notes(value: Optional[str]) -> str:
    notes = value or ""
    if len(notes) > settings.NOTES_MAX_LENGTH:
        raise ValueError(f"notes must be at most {settings.NOTES_MAX_LENGTH} characters")
    return notes


Day = Annotated[dt.date, BeforeValidator(_day)]
Notes = Annotated[str, BeforeValidator(_check_notes)]


# ---------------------------------------------------------------------------
# habit_logs
# ---------------------------------------------------------------------------

class HabitLogRow(_Row):
    table: ClassVar[str] = HABIT_LOGS

    id: str
    habit_id: str
    date: Day
    status: LogStatus
    notes: str = ""

    @field_validator("notes", mode="before")
    @classmethod
    def none_to_empty(cls, v: Optional[str]) -> str:
        return v or ""


class HabitLogInsert(BaseModel):
    habit_id: str = Field(min_length=1)
    date: Day
    status: LogStatus
    notes: Notes = ""

    def to_row(self) -> dict:
        return {
            "habit_id": self.habit_id,
            "date": format_day(self.date),
            "status": self.status.value,
            "notes": self.notes,
        }


class HabitLogPatch(BaseModel):
    status: LogStatus
    notes: Notes = ""

    def to_row(self) -> dict:
        return {"status": self.status.value, "notes": self.notes}


# ---------------------------------------------------------------------------
# habits
# ---------------------------------------------------------------------------

class HabitRow(_Row):
    table: ClassVar[str] = HABITS

    id: str
    user_id: str
    name: str
    icon: Optional[str] = None
    color: Optional[str] = None
    frequency_type: FrequencyType
    frequency_value: int = 1
    frequency_days: Optional[list[int]] = None
    frequency_month_day: Optional[int] = None
    start_date: Day
    is_archived: bool = False
    template_id: Optional[str] = None
    created_at: Optional[dt.datetime] = None


class HabitInsert(BaseModel):
    user_id: str = Field(min_length=1)
    name: str = Field(min_length=1, max_length=128)
    icon: Optional[str] = None
    color: Optional[str] = None
    frequency_type: FrequencyType = FrequencyType.daily
    frequency_value: int = Field(default=1, ge=1)
    frequency_days: Optional[list[int]] = None
    frequency_month_day: Optional[int] = Field(default=None, ge=1, le=31)
    start_date: Day
    template_id: Optional[str] = None

    @field_validator("frequency_days")
    @classmethod
    def iso_weekdays(cls, v: Optional[list[int]]) -> Optional[list[int]]:
        if v is None:
            return v
        if any(d < 1 or d > 7 for d in v):
            raise ValueError("frequency_days must be ISO weekdays 1-7")
        return sorted(set(v))

    def to_row(self) -> dict:
        row = self.model_dump()
        row["frequency_type"] = self.frequency_type.value
        row["start_date"] = format_day(self.start_date)
        return row


# ---------------------------------------------------------------------------
# habit_templates
# ---------------------------------------------------------------------------

class HabitTemplateRow(_Row):
    table: ClassVar[str] = HABIT_TEMPLATES

    id: str
    name: str
    icon: Optional[str] = None
    default_frequency_type: FrequencyType = FrequencyType.daily


# ---------------------------------------------------------------------------
# habit_statistics (view)
# ---------------------------------------------------------------------------

class HabitStatisticsRow(_Row):
    table: ClassVar[str] = HABIT_STATISTICS

    id: str
    user_id: str
    name: str
    start_date: Day
    is_archived: bool = False
    achieved_days: int = 0
    total_days: int = 0
    achievement_rate: float = 0.0
    calculated_at: Optional[dt.datetime] = None

    @field_validator("achieved_days", "total_days", "achievement_rate", mode="before")
    @classmethod
    def none_to_zero(cls, v):
        # Habits never recomputed come back from the view with NULL aggregates
        return 0 if v is None else v
