"""Entity → response model mapping shared by the routers."""
from __future__ import annotations

from habitlog.core.dates import format_day
from habitlog.schemas.habits import HabitResponse, HabitTemplateResponse
from habitlog.schemas.logs import LogEntryResponse
from habitlog.schemas.statistics import HabitStatisticsResponse
from habitlog.services.entities import Habit, HabitLogEntry, HabitStatistics, HabitTemplate


def _ev(v) -> str:
    """Extract bare string value from a str-enum or plain str."""
    return v.value if hasattr(v, "value") else str(v)


def habit_to_response(h: Habit) -> HabitResponse:
    return HabitResponse(
        id=h.id,
        name=h.name,
        icon=h.icon,
        color=h.color,
        frequency_type=_ev(h.frequency.type),
        frequency_value=h.frequency.value,
        frequency_days=list(h.frequency.days),
        frequency_month_day=h.frequency.month_day,
        start_date=format_day(h.start_date),
        is_archived=h.is_archived,
        template_id=h.template_id,
    )


def template_to_response(t: HabitTemplate) -> HabitTemplateResponse:
    return HabitTemplateResponse(
        id=t.id,
        name=t.name,
        icon=t.icon,
        default_frequency_type=_ev(t.default_frequency_type),
    )


def entry_to_response(e: HabitLogEntry) -> LogEntryResponse:
    return LogEntryResponse(
        id=e.id,
        habit_id=e.habit_id,
        date=format_day(e.date),
        status=_ev(e.status),
        notes=e.notes,
    )


def statistics_to_response(s: HabitStatistics) -> HabitStatisticsResponse:
    return HabitStatisticsResponse(
        habit_id=s.habit_id,
        name=s.name,
        achieved_days=s.achieved_days,
        total_days=s.total_days,
        achievement_rate=s.achievement_rate,
        calculated_at=s.calculated_at.isoformat() if s.calculated_at else None,
    )
