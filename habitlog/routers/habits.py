"""
Habits router.

GET  /habits                 — active habits, newest first
POST /habits                 — create (optionally from a template)
GET  /habits/templates       — habit templates by name
GET  /habits/{id}            — one habit
POST /habits/{id}/archive    — soft delete
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, status

from habitlog.context import AppContext
from habitlog.routers.deps import get_context, get_gateway, get_user_id
from habitlog.routers.serializers import habit_to_response, template_to_response
from habitlog.schemas.common import ERROR_RESPONSES
from habitlog.schemas.habits import (
    HabitCreateRequest,
    HabitListResponse,
    HabitResponse,
    HabitTemplateResponse,
)
from habitlog.services import habits as habit_service
from habitlog.services.sql_gateway import SqlGateway

router = APIRouter(prefix="/habits", tags=["habits"], responses=ERROR_RESPONSES)


@router.get("", response_model=HabitListResponse, summary="List active habits")
async def list_habits(
    ctx: AppContext = Depends(get_context),
    user_id: str = Depends(get_user_id),
    gateway: SqlGateway = Depends(get_gateway),
):
    habits = await habit_service.list_habits(gateway, ctx.cache, user_id)
    return HabitListResponse(total=len(habits), items=[habit_to_response(h) for h in habits])


@router.post(
    "",
    response_model=HabitResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a habit",
    responses={404: {"description": "Template not found."}},
)
async def create_habit(
    payload: HabitCreateRequest,
    ctx: AppContext = Depends(get_context),
    user_id: str = Depends(get_user_id),
    gateway: SqlGateway = Depends(get_gateway),
):
    """
    Create a habit for the calling user. With `template_id`, any of name,
    icon and frequency type left empty are copied from the template.
    """
    habit = await habit_service.create_habit(
        gateway,
        ctx.cache,
        user_id=user_id,
        start_date=payload.start_date or ctx.today(),
        name=payload.name,
        template_id=payload.template_id,
        icon=payload.icon,
        color=payload.color,
        frequency_type=payload.frequency_type,
        frequency_value=payload.frequency_value,
        frequency_days=payload.frequency_days,
        frequency_month_day=payload.frequency_month_day,
    )
    return habit_to_response(habit)


@router.get(
    "/templates",
    response_model=list[HabitTemplateResponse],
    summary="List habit templates",
)
async def list_templates(gateway: SqlGateway = Depends(get_gateway)):
    return [template_to_response(t) for t in await habit_service.list_templates(gateway)]


@router.get(
    "/{habit_id}",
    response_model=HabitResponse,
    summary="Get one habit",
    responses={404: {"description": "Habit not found."}},
)
async def get_habit(habit_id: str, gateway: SqlGateway = Depends(get_gateway)):
    return habit_to_response(await habit_service.get_habit(gateway, habit_id))


@router.post(
    "/{habit_id}/archive",
    response_model=HabitResponse,
    summary="Archive a habit",
    responses={404: {"description": "Habit not found."}},
)
async def archive_habit(
    habit_id: str,
    ctx: AppContext = Depends(get_context),
    gateway: SqlGateway = Depends(get_gateway),
):
    """Habits are never deleted; archived habits drop out of lists and statistics."""
    habit = await habit_service.archive_habit(gateway, ctx.cache, habit_id)
    return habit_to_response(habit)
