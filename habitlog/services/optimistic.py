"""
Optimistic update coordinator.

update_log(habit_id, day, persisted_id, status, notes):

  1. mark `day` busy on the view
  2. apply status/notes to the matching cell immediately
  3. persisted_id present → update that row; absent → insert a new row
  4. success: keep the local state, attach the row id to the cell
  5. failure: force a full re-reconciliation (restores server state),
     then surface UpdateError on the view; if that refetch fails too,
     put the pre-edit cell back and leave the FetchError showing
  6. always: clear the busy mark

Days after today are rejected before anything is marked or written.

There is no per-cell lock. Two edits of the same day race; the later
local edit wins on screen and the backend keeps its last write.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Callable, Optional, Union

from pydantic import ValidationError

from habitlog.core.dates import format_day, today as utc_today
from habitlog.core.errors import GatewayError, InvalidLogUpdateError, UpdateError
from habitlog.models.habit_log import LogStatus
from habitlog.schemas.rows import HabitLogInsert, HabitLogPatch
from habitlog.services.entities import HabitLogEntry
from habitlog.services.gateway import DataGateway
from habitlog.services.subscription import ChangeSubscriptionManager

logger = logging.getLogger(__name__)


@dataclass
class UpdateOutcome:
    day: date
    entry: Optional[HabitLogEntry] = None
    error: Optional[UpdateError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def check_loggable_day(day: date, today: date) -> None:
    """Only today and earlier can be logged."""
    if day > today:
        raise InvalidLogUpdateError(
            message="Cannot log a day in the future.",
            details={"day": format_day(day)},
        )


def build_write(
    habit_id: str,
    day: date,
    persisted_id: Optional[str],
    status: Union[LogStatus, str],
    notes: Optional[str],
) -> Union[HabitLogInsert, HabitLogPatch]:
    """Validate a cell write; raises InvalidLogUpdateError before any I/O."""
    try:
        if persisted_id:
            return HabitLogPatch(status=status, notes=notes)
        return HabitLogInsert(habit_id=habit_id, date=day, status=status, notes=notes)
    except ValidationError as exc:
        raise InvalidLogUpdateError(
            message="Invalid habit log update.",
            details={"errors": [e["msg"] for e in exc.errors()]},
            cause=exc,
        ) from exc


async def write_log(
    gateway: DataGateway,
    habit_id: str,
    day: date,
    persisted_id: Optional[str],
    status: Union[LogStatus, str],
    notes: Optional[str] = "",
) -> HabitLogEntry:
    """Insert or update the row for (habit_id, day). Raises UpdateError."""
    payload = build_write(habit_id, day, persisted_id, status, notes)
    try:
        if isinstance(payload, HabitLogPatch):
            return await gateway.update_log(persisted_id, payload)
        return await gateway.insert_log(payload)
    except GatewayError as exc:
        raise UpdateError.from_gateway(exc) from exc

class OptimisticUpdateCoordinator:
    def __init__(
        self,
        gateway: DataGateway,
        subscriptions: ChangeSubscriptionManager,
        clock: Callable[[], date] = utc_today,
    ):
        self._gateway = gateway
        self._subscriptions = subscriptions
        self._clock = clock

    @property
    def view(self):
        return self._subscriptions.view

    async def update_log(
        self,
        habit_id: str,
        day: date,
        persisted_id: Optional[str],
        status: Union[LogStatus, str],
        notes: Optional[str] = "",
    ) -> UpdateOutcome:
        check_loggable_day(day, self._clock())
        payload = build_write(habit_id, day, persisted_id, status, notes)
        view = self.view
        generation = view.generation
        showing = view.habit_id == habit_id

        if showing:
            previous = view.entry_for(day)
            epoch = view.mark_updating(day)
            applied = view.apply_local(day, payload.status, payload.notes)
        try:
            entry = await write_log(
                self._gateway, habit_id, day, persisted_id, payload.status, payload.notes
            )
        except UpdateError as exc:
            logger.warning("Updating habit %s on %s failed: %s", habit_id, day, exc.message)
            if showing and view.is_current(generation):
                # Roll back by refetching server state.
                if await self._subscriptions.refresh():
                    view.report(generation, exc)
                elif applied is not None:
                    # Refetch failed too; its FetchError stays on the view.
                    view.revert(generation, applied, previous)
            return UpdateOutcome(day=day, error=exc)
        else:
            if showing:
                view.confirm(generation, entry)
            return UpdateOutcome(day=day, entry=entry)
        finally:
            if showing:
                view.clear_updating(epoch, day)
