"""
Nightly auto habit check.

For every active daily habit that had started by the target date (default:
yesterday) and has no log on that date, write one log with the configured
status and empty notes. All new logs go in a single batch insert.

A failed lookup for one habit is logged and that habit skipped; failing to
load the habit list or to write the batch aborts the run.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional

from habitlog.core.dates import today as utc_today
from habitlog.core.errors import GatewayError
from habitlog.models.habit_log import LogStatus
from habitlog.schemas.rows import HabitLogInsert
from habitlog.services.gateway import DataGateway

logger = logging.getLogger(__name__)


@dataclass
class BackfillResult:
    target_date: date
    habits_processed: int
    logs_created: int
    skipped: list[str]   # habit ids whose lookup failed

    @property
    def message(self) -> str:
        return f"Processed {self.habits_processed} habits, created {self.logs_created} logs"


async def auto_habit_check(
    gateway: DataGateway,
    target_date: Optional[date] = None,
    status: LogStatus = LogStatus.achieved,
) -> BackfillResult:
    target = target_date or utc_today() - timedelta(days=1)
    habits = await gateway.fetch_daily_habits()

    to_create: list[HabitLogInsert] = []
    skipped: list[str] = []
    for habit in habits:
        if habit.start_date > target:
            continue
        try:
            existing = await gateway.find_log(habit.id, target)
        except GatewayError as exc:
            logger.error("Checking logs for habit %s failed: %s", habit.id, exc.message)
            skipped.append(habit.id)
            continue
        if existing is None:
            to_create.append(HabitLogInsert(habit_id=habit.id, date=target, status=status, notes=""))

    created = await gateway.insert_logs(to_create)
    result = BackfillResult(
        target_date=target,
        habits_processed=len(habits),
        logs_created=len(created),
        skipped=skipped,
    )
    logger.info("%s for %s", result.message, target)
    return result
