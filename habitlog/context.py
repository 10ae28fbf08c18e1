"""
Application context.

Built once when the app starts and closed at shutdown; routers and jobs
receive it explicitly instead of reaching for module-level clients. Tests
build their own around a throwaway database and a fixed clock.
"""
from __future__ import annotations

from datetime import date
from typing import Callable, Optional

from sqlalchemy.engine import Engine

from habitlog.core.config import Settings, settings as default_settings
from habitlog.core.dates import today as utc_today
from habitlog.services.cache import QueryCache
from habitlog.services.sql_gateway import SqlBackend, SqlGateway


class AppContext:
    def __init__(self, backend: SqlBackend, config: Settings):
        self.backend = backend
        self.config = config
        self.cache = QueryCache()

    @classmethod
    def create(
        cls,
        config: Optional[Settings] = None,
        engine: Optional[Engine] = None,
        clock: Callable[[], date] = utc_today,
    ) -> "AppContext":
        config = config or default_settings
        backend = SqlBackend(engine=engine, config=config, clock=clock)
        return cls(backend, config)

    def today(self) -> date:
        return self.backend.clock()

    def gateway_for(self, user_id: str) -> SqlGateway:
        return self.backend.connect(user_id)

    def service_gateway(self) -> SqlGateway:
        """Unscoped gateway for scheduled jobs."""
        return self.backend.connect(None)

    def close(self) -> None:
        self.cache.clear()
        self.backend.close()
