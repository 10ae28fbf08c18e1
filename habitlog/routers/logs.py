"""
Habit logs router.

GET /habits/{id}/logs           — dense trailing window (default 7 days)
GET /habits/{id}/logs/month     — dense calendar month
PUT /habits/{id}/logs/{day}     — set one day's status / notes
WS  /habits/{id}/logs/live      — live window pushed on every change
"""
from __future__ import annotations

import asyncio
import contextlib
import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect

from habitlog.context import AppContext
from habitlog.core.dates import clamp_anchor, format_day, parse_day
from habitlog.core.errors import HabitLogException
from habitlog.routers.deps import get_context, get_gateway
from habitlog.routers.serializers import entry_to_response
from habitlog.schemas.common import ERROR_RESPONSES
from habitlog.schemas.logs import (
    LiveSnapshot,
    LogEntryResponse,
    LogUpdateRequest,
    LogWindowResponse,
)
from habitlog.services.habits import get_habit
from habitlog.services.optimistic import check_loggable_day, write_log
from habitlog.services.reconcile import reconcile, reconcile_month
from habitlog.services.session import HabitLogSession
from habitlog.services.sql_gateway import SqlGateway

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/habits", tags=["logs"], responses=ERROR_RESPONSES)

MAX_WINDOW_DAYS = 62


def _window_response(habit_id: str, items) -> LogWindowResponse:
    return LogWindowResponse(
        habit_id=habit_id,
        start=format_day(items[0].date),
        end=format_day(items[-1].date),
        items=[entry_to_response(e) for e in items],
    )


# ---------------------------------------------------------------------------
# GET /habits/{habit_id}/logs
# ---------------------------------------------------------------------------

@router.get(
    "/{habit_id}/logs",
    response_model=LogWindowResponse,
    summary="Dense log window ending at a day",
    responses={404: {"description": "Habit not found."}},
)
async def get_log_window(
    habit_id: str,
    end: Optional[date] = Query(
        default=None,
        description="Last day of the window (YYYY-MM-DD). Future days are clamped to today.",
        examples=["2026-10-19"],
    ),
    days: Optional[int] = Query(default=None, ge=1, le=MAX_WINDOW_DAYS),
    ctx: AppContext = Depends(get_context),
    gateway: SqlGateway = Depends(get_gateway),
):
    """
    Return one item per calendar day, oldest first. Days without a stored
    log come back as `unchecked` with empty notes and `id: null`.
    """
    await get_habit(gateway, habit_id)
    anchor = clamp_anchor(end, ctx.today())
    items = await reconcile(gateway, habit_id, anchor, days or ctx.config.LOG_WINDOW_DAYS)
    return _window_response(habit_id, items)


@router.get(
    "/{habit_id}/logs/month",
    response_model=LogWindowResponse,
    summary="Dense log calendar for one month",
    responses={404: {"description": "Habit not found."}},
)
async def get_log_month(
    habit_id: str,
    month: Optional[date] = Query(
        default=None,
        description="Any day inside the month. Defaults to the current month.",
    ),
    ctx: AppContext = Depends(get_context),
    gateway: SqlGateway = Depends(get_gateway),
):
    await get_habit(gateway, habit_id)
    items = await reconcile_month(gateway, habit_id, month or ctx.today())
    return _window_response(habit_id, items)


# ---------------------------------------------------------------------------
# PUT /habits/{habit_id}/logs/{day}
# ---------------------------------------------------------------------------

@router.put(
    "/{habit_id}/logs/{day}",
    response_model=LogEntryResponse,
    summary="Set a day's status",
    responses={
        404: {"description": "Habit not found."},
        422: {"description": "Invalid status, notes too long, or a future day."},
    },
)
async def put_log(
    habit_id: str,
    day: date,
    payload: LogUpdateRequest,
    ctx: AppContext = Depends(get_context),
    gateway: SqlGateway = Depends(get_gateway),
):
    """
    Without `id` the day's first log is created; with `id` that log is
    updated in place. A second create for the same day fails with
    `HABIT_LOG_UPDATE_FAILED` (kind `conflict`): refetch the window to get
    the stored id.
    """
    check_loggable_day(day, ctx.today())
    await get_habit(gateway, habit_id)
    entry = await write_log(gateway, habit_id, day, payload.id, payload.status, payload.notes)
    return entry_to_response(entry)


# ---------------------------------------------------------------------------
# WS /habits/{habit_id}/logs/live
# ---------------------------------------------------------------------------

def _snapshot(session: HabitLogSession) -> dict:
    view = session.view
    return LiveSnapshot(
        habit_id=view.habit_id,
        anchor=format_day(view.anchor) if view.anchor else None,
        state=session.state.value,
        is_loading=view.is_loading,
        items=[entry_to_response(e) for e in view.logs],
        updating=sorted(format_day(d) for d in view.updating),
        error=view.error.to_dict() if view.error else None,
    ).model_dump()


async def _pump(websocket: WebSocket, session: HabitLogSession, dirty: asyncio.Event) -> None:
    """Send the latest view state whenever it changed; bursts coalesce."""
    try:
        while True:
            await dirty.wait()
            dirty.clear()
            await websocket.send_json(_snapshot(session))
    except (WebSocketDisconnect, RuntimeError):
        logger.debug("Live log sender stopped: socket closed")


async def _handle_message(session: HabitLogSession, message: dict) -> Optional[dict]:
    if not isinstance(message, dict):
        raise ValueError("message must be a JSON object")
    action = message.get("action")
    if action == "update":
        outcome = await session.update_log(
            parse_day(message["date"]),
            message["status"],
            message.get("notes", ""),
        )
        if not outcome.ok:
            return {"type": "error", **outcome.error.to_dict()}
        return None
    if action == "anchor":
        await session.move_to(parse_day(message["date"]) if message.get("date") else None)
        return None
    if action == "retry":
        await session.retry()
        return None
    return {"type": "error", "code": "UNKNOWN_ACTION", "message": f"Unknown action {action!r}."}


@router.websocket("/{habit_id}/logs/live")
async def live_logs(
    websocket: WebSocket,
    habit_id: str,
    user_id: str = Query(min_length=1),
    days: Optional[int] = Query(default=None, ge=1, le=MAX_WINDOW_DAYS),
):
    """
    Client messages:
      {"action": "update", "date": "YYYY-MM-DD", "status": "...", "notes": "..."}
      {"action": "anchor", "date": "YYYY-MM-DD"}
      {"action": "retry"}
    """
    ctx: AppContext = websocket.app.state.context
    gateway = ctx.gateway_for(user_id)
    session = HabitLogSession(
        gateway, window_days=days or ctx.config.LOG_WINDOW_DAYS, clock=ctx.today
    )
    dirty = asyncio.Event()
    session.add_listener(lambda view: dirty.set())

    await websocket.accept()
    sender = asyncio.create_task(_pump(websocket, session, dirty))
    try:
        await session.open(habit_id)
        while True:
            message = await websocket.receive_json()
            try:
                reply = await _handle_message(session, message)
            except HabitLogException as exc:
                reply = {"type": "error", **exc.to_dict()}
            except (KeyError, ValueError) as exc:
                logger.info("Rejected live message for habit %s: %r", habit_id, exc)
                reply = {"type": "error", "code": "INVALID_MESSAGE", "message": str(exc)}
            if reply is not None:
                await websocket.send_json(reply)
    except WebSocketDisconnect:
        logger.info("Live log client for habit %s disconnected", habit_id)
    finally:
        session.close()
        await gateway.close()
        sender.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sender
