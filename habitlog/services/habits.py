"""
Habit CRUD — peripheral to the log core but needed by every screen.

Habits are never deleted: `archive_habit` flips `is_archived` and both
cached collections (habits, statistics) are marked stale.
"""
from __future__ import annotations

from datetime import date
from typing import Optional

from habitlog.core.errors import (
    AUTH_FAILED,
    NOT_FOUND,
    GatewayError,
    HabitNotFoundError,
    TemplateNotFoundError,
)
from habitlog.models.habit import FrequencyType
from habitlog.schemas.rows import HabitInsert
from habitlog.services.cache import HABITS_KEY, STATISTICS_KEY, QueryCache
from habitlog.services.entities import Habit, HabitTemplate
from habitlog.services.gateway import DataGateway


async def list_habits(gateway: DataGateway, cache: QueryCache, user_id: Optional[str]) -> list[Habit]:
    """Active habits, newest first."""
    return await cache.get((HABITS_KEY, user_id), gateway.fetch_habits)


async def get_habit(gateway: DataGateway, habit_id: str) -> Habit:
    habit = await gateway.fetch_habit(habit_id)
    if habit is None:
        raise HabitNotFoundError(habit_id)
    return habit


async def list_templates(gateway: DataGateway) -> list[HabitTemplate]:
    return await gateway.fetch_templates()


async def create_habit(
    gateway: DataGateway,
    cache: QueryCache,
    user_id: str,
    start_date: date,
    name: Optional[str] = None,
    template_id: Optional[str] = None,
    icon: Optional[str] = None,
    color: Optional[str] = None,
    frequency_type: Optional[FrequencyType] = None,
    frequency_value: int = 1,
    frequency_days: Optional[list[int]] = None,
    frequency_month_day: Optional[int] = None,
) -> Habit:
    """
    Create a habit. With `template_id`, name / icon / frequency type the
    caller leaves empty are taken from the template.
    """
    template: Optional[HabitTemplate] = None
    if template_id:
        template = await gateway.fetch_template(template_id)
        if template is None:
            raise TemplateNotFoundError(template_id)

    payload = HabitInsert(
        user_id=user_id,
        name=name or (template.name if template else ""),
        icon=icon or (template.icon if template else None),
        color=color,
        frequency_type=frequency_type
        or (template.default_frequency_type if template else FrequencyType.daily),
        frequency_value=frequency_value,
        frequency_days=frequency_days,
        frequency_month_day=frequency_month_day,
        start_date=start_date,
        template_id=template_id,
    )
    habit = await gateway.insert_habit(payload)
    cache.invalidate(HABITS_KEY)
    return habit


async def archive_habit(gateway: DataGateway, cache: QueryCache, habit_id: str) -> Habit:
    try:
        habit = await gateway.archive_habit(habit_id)
    except GatewayError as exc:
        if exc.backend_code in (NOT_FOUND, AUTH_FAILED):
            raise HabitNotFoundError(habit_id) from exc
        raise
    cache.invalidate(HABITS_KEY)
    cache.invalidate(STATISTICS_KEY)
    return habit
