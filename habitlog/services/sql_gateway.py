"""
In-process backend: SQLAlchemy tables + a change feed.

SqlBackend owns the engine, the session factory and the ChangeFeed. It is
constructed once at startup and closed at shutdown. `connect(user_id)`
hands out a SqlGateway scoped to one identity:

  * user gateway    — sees only the user's habits, their logs and their
                      statistics; writes to another user's rows fail with
                      the authentication code.
  * service gateway — `connect(None)`; unscoped, used by scheduled jobs.

Every committed insert/update is published on the ChangeFeed after the
commit, so subscribers never observe uncommitted state. Delivery is
asynchronous: each matching callback runs as its own task on the running
event loop.
"""
from __future__ import annotations

import asyncio
import itertools
import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Optional

from sqlalchemy import Date, and_, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from starlette.concurrency import run_in_threadpool

from habitlog.core.config import Settings, settings as default_settings
from habitlog.core.dates import format_day, parse_day, today as utc_today
from habitlog.core.errors import (
    AUTH_FAILED,
    GatewayError,
    NETWORK_FAILED,
    NOT_FOUND,
    RAISED_BY_PROCEDURE,
    UNIQUE_VIOLATION,
)
from habitlog.db.base import Base, build_engine, build_session_factory
from habitlog.models.habit import Habit
from habitlog.models.habit_log import HabitLog
from habitlog.models.habit_statistics import HabitDailyStatistics
from habitlog.models.habit_template import HabitTemplate
from habitlog.schemas.rows import HABITS, HABIT_LOGS, HABIT_STATISTICS, HABIT_TEMPLATES
from habitlog.services.entities import ChangeEvent
from habitlog.services.gateway import (
    RECOMPUTE_STATISTICS,
    Channel,
    ChangeCallback,
    DataGateway,
    Filters,
    Order,
)
from habitlog.services.procedures import ProcedureRaised, calculate_habit_statistics

logger = logging.getLogger(__name__)

_MODELS = {
    HABITS: Habit,
    HABIT_LOGS: HabitLog,
    HABIT_TEMPLATES: HabitTemplate,
}

FOREIGN_KEY_VIOLATION = "23503"
UNDEFINED_TABLE = "42P01"
UNDEFINED_COLUMN = "42703"
UNDEFINED_FUNCTION = "PGRST202"
INTERNAL = "XX000"


# ---------------------------------------------------------------------------
# Serialization helpers
# ---------------------------------------------------------------------------

def _wire(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return format_day(value)
    if isinstance(value, Decimal):
        return float(value)
    return value


def _row_dict(obj) -> dict:
    return {c.name: _wire(getattr(obj, c.key)) for c in obj.__table__.columns}


def _coerce(column, value: Any) -> Any:
    if value is not None and isinstance(column.type, Date):
        return parse_day(value)
    return value


def _translate(exc: SQLAlchemyError) -> GatewayError:
    if isinstance(exc, IntegrityError):
        text = str(exc.orig).lower()
        if "unique" in text or "duplicate" in text:
            return GatewayError("Duplicate row.", backend_code=UNIQUE_VIOLATION, cause=exc)
        return GatewayError("Constraint violated.", backend_code=FOREIGN_KEY_VIOLATION, cause=exc)
    if isinstance(exc, OperationalError):
        return GatewayError("Backend unreachable.", backend_code=NETWORK_FAILED, cause=exc)
    return GatewayError("Backend error.", backend_code=INTERNAL, cause=exc)


# ---------------------------------------------------------------------------
# Change feed
# ---------------------------------------------------------------------------

class SqlChannel(Channel):
    def __init__(self, feed: "ChangeFeed", key: int, table: str, filters: Filters,
                 callback: ChangeCallback):
        self._feed = feed
        self.key = key
        self.table = table
        self.filters = filters
        self.callback = callback
        self.topic = f"{table}:{key}"
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def matches(self, event: ChangeEvent) -> bool:
        if self._closed or event.table != self.table:
            return False
        row = event.new or event.old
        return all(str(row.get(k)) == str(v) for k, v in self.filters.eq.items())

    def unsubscribe(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._feed.remove(self)


class ChangeFeed:
    """Fan-out of committed row changes to live channels."""

    def __init__(self):
        self._channels: dict[int, SqlChannel] = {}
        self._keys = itertools.count(1)
        self._pending: set[asyncio.Task] = set()

    def register(self, table: str, filters: Filters, callback: ChangeCallback) -> SqlChannel:
        channel = SqlChannel(self, next(self._keys), table, filters, callback)
        self._channels[channel.key] = channel
        return channel

    def remove(self, channel: SqlChannel) -> None:
        self._channels.pop(channel.key, None)

    @property
    def channel_count(self) -> int:
        return len(self._channels)

    def publish(self, event: ChangeEvent) -> int:
        """Schedule delivery to every matching channel. Returns deliveries scheduled."""
        targets = [c for c in self._channels.values() if c.matches(event)]
        if not targets:
            return 0
        loop = asyncio.get_running_loop()
        for channel in targets:
            task = loop.create_task(channel.callback(event))
            task.set_name(channel.topic)
            self._pending.add(task)
            task.add_done_callback(self._delivered)
        return len(targets)

    def _delivered(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Change callback %s failed", task.get_name(), exc_info=exc)

    async def drain(self) -> None:
        """Wait until every scheduled delivery (and any it triggers) finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def close(self) -> None:
        for channel in list(self._channels.values()):
            channel.unsubscribe()
        for task in list(self._pending):
            task.cancel()


# ---------------------------------------------------------------------------
# Backend
# ---------------------------------------------------------------------------

class SqlBackend:
    def __init__(
        self,
        database_url: Optional[str] = None,
        engine: Optional[Engine] = None,
        config: Optional[Settings] = None,
        clock: Callable[[], date] = utc_today,
    ):
        self.config = config or default_settings
        self.engine = engine or build_engine(database_url or self.config.DATABASE_URL)
        self.session_factory = build_session_factory(self.engine)
        self.feed = ChangeFeed()
        self.clock = clock

    def create_all(self) -> None:
        """Create tables directly (dev and tests; Alembic in production)."""
        Base.metadata.create_all(bind=self.engine)

    def connect(self, user_id: Optional[str]) -> "SqlGateway":
        return SqlGateway(self, user_id)

    def close(self) -> None:
        self.feed.close()
        self.engine.dispose()


class SqlGateway(DataGateway):
    def __init__(self, backend: SqlBackend, user_id: Optional[str]):
        self._backend = backend
        self.user_id = user_id
        self._channels: list[Channel] = []

    # -- scoping ------------------------------------------------------------

    def _owned_habits(self):
        return select(Habit.id).where(Habit.user_id == self.user_id)

    def _source(self, table: str):
        """Return (select statement, column mapping) for a table or view."""
        if table == HABIT_STATISTICS:
            return self._statistics_view()
        model = _MODELS.get(table)
        if model is None:
            raise GatewayError(f"Unknown resource {table!r}.", backend_code=UNDEFINED_TABLE)
        stmt = select(model)
        if self.user_id is not None:
            if model is Habit:
                stmt = stmt.where(Habit.user_id == self.user_id)
            elif model is HabitLog:
                stmt = stmt.where(HabitLog.habit_id.in_(self._owned_habits()))
        return stmt, {c.name: c for c in model.__table__.columns}

    def _statistics_view(self):
        latest = (
            select(
                HabitDailyStatistics.habit_id,
                func.max(HabitDailyStatistics.stat_date).label("stat_date"),
            )
            .group_by(HabitDailyStatistics.habit_id)
            .subquery()
        )
        habits = Habit.__table__.c
        stats = HabitDailyStatistics.__table__.c
        columns = {
            "id": habits.id,
            "user_id": habits.user_id,
            "name": habits.name,
            "start_date": habits.start_date,
            "is_archived": habits.is_archived,
            "achieved_days": stats.achieved_days,
            "total_days": stats.total_days,
            "achievement_rate": stats.achievement_rate,
            "calculated_at": stats.calculated_at,
        }
        stmt = (
            select(*[col.label(name) for name, col in columns.items()])
            .outerjoin(latest, latest.c.habit_id == Habit.id)
            .outerjoin(
                HabitDailyStatistics,
                and_(
                    HabitDailyStatistics.habit_id == latest.c.habit_id,
                    HabitDailyStatistics.stat_date == latest.c.stat_date,
                ),
            )
        )
        if self.user_id is not None:
            stmt = stmt.where(Habit.user_id == self.user_id)
        return stmt, columns

    def _require_owned(self, db, habit_id: str) -> None:
        if self.user_id is None:
            return
        owner = db.execute(select(Habit.user_id).where(Habit.id == habit_id)).scalar()
        if owner != self.user_id:
            raise GatewayError("Not permitted for this user.", backend_code=AUTH_FAILED)

    def _check_write(self, db, table: str, row: dict) -> None:
        if self.user_id is None:
            return
        if table == HABITS:
            if row.get("user_id") != self.user_id:
                raise GatewayError("Not permitted for this user.", backend_code=AUTH_FAILED)
        elif table == HABIT_LOGS:
            self._require_owned(db, row.get("habit_id"))
        else:
            raise GatewayError(f"{table} is read-only.", backend_code=AUTH_FAILED)

    # -- raw operations -------------------------------------------------------
    #
    # Session work is synchronous; it runs in the threadpool so the event
    # loop keeps serving other requests, sockets and change deliveries
    # while a round trip is in flight. Publishing stays on the loop.

    async def query(
        self,
        table: str,
        filters: Optional[Filters] = None,
        order: Optional[Order] = None,
        limit: Optional[int] = None,
    ) -> list[dict]:
        stmt, columns = self._source(table)
        filters = filters or Filters()
        for ops, compare in (
            (filters.eq, lambda c, v: c == v),
            (filters.gte, lambda c, v: c >= v),
            (filters.lte, lambda c, v: c <= v),
        ):
            for name, value in ops.items():
                column = self._column(columns, table, name)
                stmt = stmt.where(compare(column, _coerce(column, value)))
        if order is not None:
            column = self._column(columns, table, order.column)
            stmt = stmt.order_by(
                column.asc().nulls_last() if order.ascending else column.desc().nulls_last()
            )
        if limit is not None:
            stmt = stmt.limit(limit)
        return await run_in_threadpool(self._select, table, stmt)

    def _select(self, table: str, stmt) -> list[dict]:
        try:
            with self._backend.session_factory() as db:
                if table == HABIT_STATISTICS:
                    return [
                        {k: _wire(v) for k, v in row._mapping.items()}
                        for row in db.execute(stmt).all()
                    ]
                return [_row_dict(obj) for obj in db.execute(stmt).scalars().all()]
        except SQLAlchemyError as exc:
            raise _translate(exc) from exc

    @staticmethod
    def _column(columns: dict, table: str, name: str):
        try:
            return columns[name]
        except KeyError:
            raise GatewayError(
                f"Column {name!r} does not exist on {table}.",
                backend_code=UNDEFINED_COLUMN,
            ) from None

    async def insert(self, table: str, rows: list[dict]) -> list[dict]:
        model = _MODELS.get(table)
        if model is None:
            raise GatewayError(f"Cannot insert into {table!r}.", backend_code=UNDEFINED_TABLE)
        stored = await run_in_threadpool(self._insert, table, model, rows)
        for row in stored:
            self._backend.feed.publish(ChangeEvent(table=table, event_type="INSERT", new=row))
        return stored

    def _insert(self, table: str, model, rows: list[dict]) -> list[dict]:
        columns = model.__table__.columns
        try:
            with self._backend.session_factory() as db:
                objs = []
                for row in rows:
                    self._check_write(db, table, row)
                    values = {
                        k: _coerce(self._column(columns, table, k), v) for k, v in row.items()
                    }
                    objs.append(model(**values))
                db.add_all(objs)
                db.commit()
                return [_row_dict(obj) for obj in objs]
        except SQLAlchemyError as exc:
            raise _translate(exc) from exc

    async def update(self, table: str, row_id: str, fields: dict) -> dict:
        model = _MODELS.get(table)
        if model is None:
            raise GatewayError(f"Cannot update {table!r}.", backend_code=UNDEFINED_TABLE)
        old, new = await run_in_threadpool(self._update, table, model, row_id, fields)
        self._backend.feed.publish(ChangeEvent(table=table, event_type="UPDATE", new=new, old=old))
        return new

    def _update(self, table: str, model, row_id: str, fields: dict) -> tuple[dict, dict]:
        columns = model.__table__.columns
        try:
            with self._backend.session_factory() as db:
                obj = db.get(model, row_id)
                if obj is None:
                    raise GatewayError(f"No {table} row {row_id}.", backend_code=NOT_FOUND)
                old = _row_dict(obj)
                self._check_write(db, table, old)
                for name, value in fields.items():
                    column = self._column(columns, table, name)
                    setattr(obj, column.key, _coerce(column, value))
                db.commit()
                return old, _row_dict(obj)
        except SQLAlchemyError as exc:
            raise _translate(exc) from exc

    async def subscribe(self, table: str, filters: Filters, callback: ChangeCallback) -> Channel:
        if table not in _MODELS:
            raise GatewayError(f"Cannot subscribe to {table!r}.", backend_code=UNDEFINED_TABLE)
        if self.user_id is not None and table == HABIT_LOGS:
            await run_in_threadpool(self._check_subscription, filters.eq.get("habit_id"))
        channel = self._backend.feed.register(table, filters, callback)
        self._channels.append(channel)
        return channel

    def _check_subscription(self, habit_id: Optional[str]) -> None:
        try:
            with self._backend.session_factory() as db:
                self._require_owned(db, habit_id)
        except SQLAlchemyError as exc:
            raise _translate(exc) from exc

    async def invoke(self, procedure: str) -> Any:
        if procedure != RECOMPUTE_STATISTICS:
            raise GatewayError(
                f"Procedure {procedure!r} does not exist.",
                backend_code=UNDEFINED_FUNCTION,
            )
        return await run_in_threadpool(self._recompute)

    def _recompute(self) -> int:
        try:
            with self._backend.session_factory() as db:
                return calculate_habit_statistics(
                    db,
                    user_id=self.user_id,
                    today=self._backend.clock(),
                    manual_limit=self._backend.config.MANUAL_RECOMPUTE_PER_DAY,
                )
        except ProcedureRaised as exc:
            raise GatewayError(str(exc), backend_code=RAISED_BY_PROCEDURE, cause=exc) from exc
        except SQLAlchemyError as exc:
            raise _translate(exc) from exc

    async def close(self) -> None:
        for channel in self._channels:
            channel.unsubscribe()
        self._channels.clear()
