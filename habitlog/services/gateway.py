"""
Data gateway contract.

The backend is an external service exposing query / insert / update /
change-subscription / procedure capabilities over named tables and views.
`DataGateway` declares those raw operations (dict rows in, dict rows out)
and builds the typed operations the rest of the package uses on top of
them: each raw row is validated against its schema in
habitlog.schemas.rows and converted into an entity right here.

Implementations raise `GatewayError` for every transport or backend failure.
"""
from __future__ import annotations

import abc
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Awaitable, Callable, Optional

from pydantic import ValidationError

from habitlog.core.dates import format_day
from habitlog.core.errors import GatewayError, MALFORMED_ROW
from habitlog.schemas.rows import (
    HABITS,
    HABIT_LOGS,
    HABIT_STATISTICS,
    HABIT_TEMPLATES,
    HabitInsert,
    HabitLogInsert,
    HabitLogPatch,
    HabitLogRow,
    HabitRow,
    HabitStatisticsRow,
    HabitTemplateRow,
)
from habitlog.services.entities import (
    ChangeEvent,
    Habit,
    HabitLogEntry,
    HabitStatistics,
    HabitTemplate,
)

ChangeCallback = Callable[[ChangeEvent], Awaitable[None]]

RECOMPUTE_STATISTICS = "calculate_habit_statistics"


@dataclass
class Filters:
    """Column filters; every condition must hold."""
    eq: dict[str, Any] = field(default_factory=dict)
    gte: dict[str, Any] = field(default_factory=dict)
    lte: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Order:
    column: str
    ascending: bool = True


class Channel(abc.ABC):
    """Live change subscription returned by `DataGateway.subscribe`."""

    topic: str

    @property
    @abc.abstractmethod
    def closed(self) -> bool: ...

    @abc.abstractmethod
    def unsubscribe(self) -> None:
        """Release the channel. Idempotent, never suspends."""


def _validate(schema, raw: dict):
    try:
        return schema.model_validate(raw)
    except ValidationError as exc:
        raise GatewayError(
            f"Malformed {schema.table} row from backend.",
            backend_code=MALFORMED_ROW,
            cause=exc,
        ) from exc


class DataGateway(abc.ABC):

    # -- raw operations ----------------------------------------------------

    @abc.abstractmethod
    async def query(
        self,
        table: str,
        filters: Optional[Filters] = None,
        order: Optional[Order] = None,
        limit: Optional[int] = None,
    ) -> list[dict]: ...

    @abc.abstractmethod
    async def insert(self, table: str, rows: list[dict]) -> list[dict]:
        """Insert rows; return them as stored (with generated ids)."""

    @abc.abstractmethod
    async def update(self, table: str, row_id: str, fields: dict) -> dict:
        """Update one row by id; return it as stored."""

    @abc.abstractmethod
    async def subscribe(
        self, table: str, filters: Filters, callback: ChangeCallback
    ) -> Channel: ...

    @abc.abstractmethod
    async def invoke(self, procedure: str) -> Any: ...

    async def close(self) -> None:
        return None

    # -- habit_logs --------------------------------------------------------

    async def fetch_logs(self, habit_id: str, start: date, end: date) -> list[HabitLogEntry]:
        rows = await self.query(
            HABIT_LOGS,
            Filters(
                eq={"habit_id": habit_id},
                gte={"date": format_day(start)},
                lte={"date": format_day(end)},
            ),
            order=Order("date"),
        )
        return [HabitLogEntry.from_row(_validate(HabitLogRow, r)) for r in rows]

    async def find_log(self, habit_id: str, day: date) -> Optional[HabitLogEntry]:
        rows = await self.query(
            HABIT_LOGS,
            Filters(eq={"habit_id": habit_id, "date": format_day(day)}),
            limit=1,
        )
        if not rows:
            return None
        return HabitLogEntry.from_row(_validate(HabitLogRow, rows[0]))

    async def insert_logs(self, payloads: list[HabitLogInsert]) -> list[HabitLogEntry]:
        if not payloads:
            return []
        rows = await self.insert(HABIT_LOGS, [p.to_row() for p in payloads])
        return [HabitLogEntry.from_row(_validate(HabitLogRow, r)) for r in rows]

    async def insert_log(self, payload: HabitLogInsert) -> HabitLogEntry:
        return (await self.insert_logs([payload]))[0]

    async def update_log(self, log_id: str, patch: HabitLogPatch) -> HabitLogEntry:
        row = await self.update(HABIT_LOGS, log_id, patch.to_row())
        return HabitLogEntry.from_row(_validate(HabitLogRow, row))

    async def subscribe_logs(self, habit_id: str, callback: ChangeCallback) -> Channel:
        return await self.subscribe(HABIT_LOGS, Filters(eq={"habit_id": habit_id}), callback)

    # -- habits ------------------------------------------------------------

    async def fetch_habits(self, include_archived: bool = False) -> list[Habit]:
        filters = Filters() if include_archived else Filters(eq={"is_archived": False})
        rows = await self.query(HABITS, filters, order=Order("created_at", ascending=False))
        return [Habit.from_row(_validate(HabitRow, r)) for r in rows]

    async def fetch_habit(self, habit_id: str) -> Optional[Habit]:
        rows = await self.query(HABITS, Filters(eq={"id": habit_id}), limit=1)
        return Habit.from_row(_validate(HabitRow, rows[0])) if rows else None

    async def fetch_daily_habits(self) -> list[Habit]:
        rows = await self.query(
            HABITS,
            Filters(eq={"frequency_type": "daily", "is_archived": False}),
        )
        return [Habit.from_row(_validate(HabitRow, r)) for r in rows]

    async def insert_habit(self, payload: HabitInsert) -> Habit:
        rows = await self.insert(HABITS, [payload.to_row()])
        return Habit.from_row(_validate(HabitRow, rows[0]))

    async def archive_habit(self, habit_id: str) -> Habit:
        row = await self.update(HABITS, habit_id, {"is_archived": True})
        return Habit.from_row(_validate(HabitRow, row))

    async def fetch_templates(self) -> list[HabitTemplate]:
        rows = await self.query(HABIT_TEMPLATES, order=Order("name"))
        return [HabitTemplate.from_row(_validate(HabitTemplateRow, r)) for r in rows]

    async def fetch_template(self, template_id: str) -> Optional[HabitTemplate]:
        rows = await self.query(HABIT_TEMPLATES, Filters(eq={"id": template_id}), limit=1)
        return HabitTemplate.from_row(_validate(HabitTemplateRow, rows[0])) if rows else None

    # -- habit_statistics --------------------------------------------------

    async def fetch_statistics(self) -> list[HabitStatistics]:
        rows = await self.query(
            HABIT_STATISTICS,
            Filters(eq={"is_archived": False}),
            order=Order("achievement_rate", ascending=False),
        )
        return [HabitStatistics.from_row(_validate(HabitStatisticsRow, r)) for r in rows]
