"""
Shared pytest fixtures.

Uses a file-backed SQLite database so no Postgres is required for tests.
Every test gets its own user id, so rows never leak between tests; the
clock is pinned to a far-future day so "today" never depends on when the
suite runs.

`fake` is an in-memory DataGateway for the concurrency tests: failures are
scripted per operation and `hold(op)` parks the next call to `op` until
the returned event is set.
"""
import asyncio
import itertools
import uuid
from collections import defaultdict
from datetime import date
from typing import Optional

import pytest
from fastapi.testclient import TestClient

from habitlog.context import AppContext
from habitlog.core.config import Settings
from habitlog.core.dates import format_day
from habitlog.core.errors import (
    NETWORK_FAILED,
    NOT_FOUND,
    UNIQUE_VIOLATION,
    GatewayError,
)
from habitlog.db.base import Base, build_engine, build_session_factory
from habitlog.main import app
from habitlog.models.habit_template import HabitTemplate
from habitlog.schemas.rows import HABITS, HABIT_LOGS, HABIT_STATISTICS, HABIT_TEMPLATES
from habitlog.services.entities import ChangeEvent
from habitlog.services.gateway import Channel, DataGateway, Filters, Order

SQLITE_URL = "sqlite:///./test_habitlog.db"
TODAY = date(2099, 6, 15)
JOB_TOKEN = "test-job-token"

TEST_SETTINGS = Settings(DATABASE_URL=SQLITE_URL, APP_ENV="test", JOB_TOKEN=JOB_TOKEN)

engine = build_engine(SQLITE_URL)
TestingSessionLocal = build_session_factory(engine)

_TEMPLATES = [
    ("00000000-0000-4000-8000-000000000001", "Drink water", "water", "daily"),
    ("00000000-0000-4000-8000-000000000002", "Exercise", "dumbbell", "weekly"),
    ("00000000-0000-4000-8000-000000000003", "Review budget", "wallet", "monthly"),
]


@pytest.fixture(scope="session", autouse=True)
def create_tables():
    Base.metadata.create_all(bind=engine)
    # Seed templates (normally done by the Alembic migration)
    db = TestingSessionLocal()
    try:
        if db.query(HabitTemplate).count() == 0:
            for template_id, name, icon, frequency_type in _TEMPLATES:
                db.add(HabitTemplate(
                    id=template_id,
                    name=name,
                    icon=icon,
                    default_frequency_type=frequency_type,
                ))
            db.commit()
    finally:
        db.close()
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def context():
    ctx = AppContext.create(config=TEST_SETTINGS, engine=engine, clock=lambda: TODAY)
    yield ctx
    ctx.close()


@pytest.fixture()
def client(context):
    app.state.context = context
    with TestClient(app) as c:
        yield c
    app.state.context = None


@pytest.fixture()
def user_id():
    return f"user-{uuid.uuid4().hex[:12]}"


@pytest.fixture()
def headers(user_id):
    return {"X-User-Id": user_id}


@pytest.fixture()
def gateway(context, user_id):
    return context.gateway_for(user_id)


@pytest.fixture()
def habit(client, headers):
    """A daily habit started six days before TODAY."""
    r = client.post(
        "/habits",
        json={"name": "Walk", "start_date": "2099-06-09"},
        headers=headers,
    )
    assert r.status_code == 201
    return r.json()


# ---------------------------------------------------------------------------
# In-memory gateway
# ---------------------------------------------------------------------------

class FakeChannel(Channel):
    def __init__(self, table: str, filters: Filters, callback):
        self.table = table
        self.filters = filters
        self.callback = callback
        self.topic = f"{table}:{filters.eq}"
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def unsubscribe(self) -> None:
        self._closed = True

    def matches(self, event: ChangeEvent) -> bool:
        row = event.new or event.old
        return (
            not self._closed
            and event.table == self.table
            and all(row.get(k) == v for k, v in self.filters.eq.items())
        )


class FakeGateway(DataGateway):
    def __init__(self):
        self.rows: dict[str, list[dict]] = {
            HABITS: [], HABIT_LOGS: [], HABIT_TEMPLATES: [], HABIT_STATISTICS: [],
        }
        self.calls: list[tuple] = []
        self.channels: list[FakeChannel] = []
        self.invoke_result = 0
        self._failures: dict[str, list[GatewayError]] = defaultdict(list)
        self._holds: dict[str, list[asyncio.Event]] = defaultdict(list)
        self._ids = itertools.count(1)

    # -- scripting ---------------------------------------------------------

    def fail(self, op: str, backend_code: str = NETWORK_FAILED, message: str = "boom") -> None:
        self._failures[op].append(GatewayError(message, backend_code=backend_code))

    def hold(self, op: str) -> asyncio.Event:
        gate = asyncio.Event()
        self._holds[op].append(gate)
        return gate

    def count(self, op: str) -> int:
        return sum(1 for call in self.calls if call[0] == op)

    def add_log(self, habit_id: str, day: date, status: str = "achieved",
                notes: Optional[str] = "", log_id: Optional[str] = None) -> dict:
        row = {
            "id": log_id or f"log-{next(self._ids)}",
            "habit_id": habit_id,
            "date": format_day(day),
            "status": status,
            "notes": notes,
        }
        self.rows[HABIT_LOGS].append(row)
        return row

    def add_habit(self, habit_id: str, start_date: date, frequency_type: str = "daily",
                  is_archived: bool = False) -> dict:
        row = {
            "id": habit_id,
            "user_id": "user-fake",
            "name": habit_id,
            "frequency_type": frequency_type,
            "frequency_value": 1,
            "start_date": format_day(start_date),
            "is_archived": is_archived,
        }
        self.rows[HABITS].append(row)
        return row

    async def emit(self, table: str = HABIT_LOGS, event_type: str = "INSERT",
                   new: Optional[dict] = None) -> None:
        event = ChangeEvent(table=table, event_type=event_type, new=new or {})
        for channel in list(self.channels):
            if channel.matches(event):
                await channel.callback(event)

    async def _enter(self, op: str, *args) -> None:
        self.calls.append((op, *args))
        if self._holds[op]:
            await self._holds[op].pop(0).wait()
        if self._failures[op]:
            raise self._failures[op].pop(0)

    # -- raw operations ----------------------------------------------------

    async def query(self, table, filters=None, order: Optional[Order] = None, limit=None):
        await self._enter("query", table, filters)
        filters = filters or Filters()
        rows = [
            dict(r) for r in self.rows[table]
            if all(r.get(k) == v for k, v in filters.eq.items())
            and all(r.get(k) >= v for k, v in filters.gte.items())
            and all(r.get(k) <= v for k, v in filters.lte.items())
        ]
        if order is not None:
            rows.sort(key=lambda r: r.get(order.column) or "", reverse=not order.ascending)
        return rows[:limit] if limit is not None else rows

    async def insert(self, table, rows):
        await self._enter("insert", table, rows)
        stored = []
        for row in rows:
            row = dict(row)
            if table == HABIT_LOGS and any(
                r["habit_id"] == row["habit_id"] and r["date"] == row["date"]
                for r in self.rows[table]
            ):
                raise GatewayError("duplicate key", backend_code=UNIQUE_VIOLATION)
            row.setdefault("id", f"log-{next(self._ids)}")
            self.rows[table].append(row)
            stored.append(dict(row))
        return stored

    async def update(self, table, row_id, fields):
        await self._enter("update", table, row_id, fields)
        for row in self.rows[table]:
            if row["id"] == row_id:
                row.update(fields)
                return dict(row)
        raise GatewayError("no rows", backend_code=NOT_FOUND)

    async def subscribe(self, table, filters, callback):
        await self._enter("subscribe", table, filters)
        channel = FakeChannel(table, filters, callback)
        self.channels.append(channel)
        return channel

    async def invoke(self, procedure):
        await self._enter("invoke", procedure)
        return self.invoke_result


@pytest.fixture()
def fake():
    return FakeGateway()
