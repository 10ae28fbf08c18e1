"""
HabitLogSession — one habit view wired end to end.

Owns a HabitLogView and the subscription manager / update coordinator that
operate on it. The UI (or the live websocket) talks to this object only.
"""
from __future__ import annotations

from datetime import date
from typing import Callable, Optional, Union

from habitlog.core.dates import today as utc_today
from habitlog.models.habit_log import LogStatus
from habitlog.services.gateway import DataGateway
from habitlog.services.log_view import HabitLogView, Listener
from habitlog.services.optimistic import OptimisticUpdateCoordinator, UpdateOutcome
from habitlog.services.subscription import (
    ChangeSubscriptionManager,
    SubscriptionHandle,
    SubscriptionState,
)

_UNSET = object()


class HabitLogSession:
    def __init__(
        self,
        gateway: DataGateway,
        window_days: int = 7,
        clock: Callable[[], date] = utc_today,
    ):
        self.view = HabitLogView(window_days)
        self.subscriptions = ChangeSubscriptionManager(gateway, self.view, clock)
        self.updates = OptimisticUpdateCoordinator(gateway, self.subscriptions, clock)

    @property
    def state(self) -> SubscriptionState:
        return self.subscriptions.state

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        return self.view.add_listener(listener)

    async def open(self, habit_id: str, anchor: Optional[date] = None) -> SubscriptionHandle:
        """Show `habit_id`; switching habits goes through here too."""
        return await self.subscriptions.subscribe(habit_id, anchor)

    async def move_to(self, anchor: Optional[date]) -> SubscriptionHandle:
        return await self.subscriptions.set_anchor(anchor)

    async def retry(self) -> bool:
        return await self.subscriptions.retry()

    async def update_log(
        self,
        day: date,
        status: Union[LogStatus, str],
        notes: Optional[str] = "",
        persisted_id=_UNSET,
    ) -> UpdateOutcome:
        """Edit one cell of the shown habit; the row id comes from the cell unless given."""
        habit_id = self.view.habit_id
        if habit_id is None:
            raise RuntimeError("no habit is open")
        if persisted_id is _UNSET:
            cell = self.view.entry_for(day)
            persisted_id = cell.id if cell else None
        return await self.updates.update_log(habit_id, day, persisted_id, status, notes)

    def close(self) -> None:
        self.subscriptions.close()
