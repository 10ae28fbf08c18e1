"""
Statistics — read the precomputed view and trigger server-side recompute.

The aggregation itself runs in the backend (`calculate_habit_statistics`),
which also enforces the one-manual-run-per-day rule. This side only
triggers it, reports the outcome and marks cached statistics and habit
collections stale on success. No automatic retry.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from habitlog.core.errors import GatewayError, RecomputeError
from habitlog.services.cache import HABITS_KEY, STATISTICS_KEY, QueryCache
from habitlog.services.entities import HabitStatistics
from habitlog.services.gateway import RECOMPUTE_STATISTICS, DataGateway

logger = logging.getLogger(__name__)

RECOMPUTE_OK_MESSAGE = "Statistics updated."


@dataclass
class RecomputeOutcome:
    message: str
    error: Optional[RecomputeError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


async def fetch_statistics(
    gateway: DataGateway,
    cache: QueryCache,
    user_id: Optional[str],
) -> list[HabitStatistics]:
    """Active habits' statistics, highest achievement rate first."""
    return await cache.get((STATISTICS_KEY, user_id), gateway.fetch_statistics)


class StatisticsRecomputeController:
    def __init__(self, gateway: DataGateway, cache: QueryCache):
        self._gateway = gateway
        self._cache = cache
        self.is_pending = False
        self.error: Optional[RecomputeError] = None

    async def recalculate(self) -> RecomputeOutcome:
        self.is_pending = True
        self.error = None
        try:
            await self._gateway.invoke(RECOMPUTE_STATISTICS)
        except GatewayError as exc:
            self.error = RecomputeError.from_gateway(exc)
            logger.warning("Statistics recompute failed: %s", self.error.message)
            return RecomputeOutcome(message=self.error.message, error=self.error)
        finally:
            self.is_pending = False

        self._cache.invalidate(STATISTICS_KEY)
        self._cache.invalidate(HABITS_KEY)
        return RecomputeOutcome(message=RECOMPUTE_OK_MESSAGE)
