"""
Log reconciliation — sparse persisted rows → dense, gap-free window.

habit_logs only holds a row once a day's status moved away from the
implicit default, but every view needs one cell per calendar day. The
merge happens here and nowhere else:

  1. one range query for [start, end], ascending by date
  2. for each day start → end: the persisted row for that exact day if
     present, else a synthesized default (unchecked, empty notes, no id)

The result always has exactly (end - start + 1) cells in ascending order.
A failed query raises FetchError and produces nothing, so callers keep
whatever window they already hold.

Public API
----------
reconcile(gateway, habit_id, window_end, window_days)  -> list[HabitLogEntry]
reconcile_range(gateway, habit_id, start, end)         -> list[HabitLogEntry]
reconcile_month(gateway, habit_id, anchor)             -> list[HabitLogEntry]
"""
from __future__ import annotations

from datetime import date

from habitlog.core.dates import iter_days, month_bounds, window_bounds
from habitlog.core.errors import FetchError, GatewayError
from habitlog.services.entities import HabitLogEntry
from habitlog.services.gateway import DataGateway


def merge_window(
    habit_id: str,
    start: date,
    end: date,
    persisted: list[HabitLogEntry],
) -> list[HabitLogEntry]:
    """Overlay persisted entries onto the full day range (pure, no I/O)."""
    by_day = {entry.date: entry for entry in persisted if entry.habit_id == habit_id}
    return [by_day.get(day) or HabitLogEntry.default(habit_id, day) for day in iter_days(start, end)]


async def reconcile_range(
    gateway: DataGateway,
    habit_id: str,
    start: date,
    end: date,
) -> list[HabitLogEntry]:
    if not habit_id:
        raise ValueError("habit_id must be a non-empty string")
    if end < start:
        raise ValueError(f"range end {end} precedes start {start}")
    try:
        persisted = await gateway.fetch_logs(habit_id, start, end)
    except GatewayError as exc:
        raise FetchError.from_gateway(exc) from exc
    return merge_window(habit_id, start, end, persisted)


async def reconcile(
    gateway: DataGateway,
    habit_id: str,
    window_end: date,
    window_days: int = 7,
) -> list[HabitLogEntry]:
    """Dense trailing window of `window_days` cells ending at `window_end`."""
    start, end = window_bounds(window_end, window_days)
    return await reconcile_range(gateway, habit_id, start, end)


async def reconcile_month(
    gateway: DataGateway,
    habit_id: str,
    anchor: date,
) -> list[HabitLogEntry]:
    """Dense calendar month containing `anchor` (calendar overlay view)."""
    start, end = month_bounds(anchor)
    return await reconcile_range(gateway, habit_id, start, end)
