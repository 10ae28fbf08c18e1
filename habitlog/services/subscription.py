"""
Change subscription manager.

Keeps one live `habit_logs` subscription for the habit a view is showing
and re-reconciles the view's window whenever the backend reports a change
for that habit.

State per subscription:

  unsubscribed ──subscribe──▶ subscribing ──ack──▶ active ──unsubscribe──▶ unsubscribed
                                   │
                                   └──error──▶ failed   (retry() subscribes again)

Rules
-----
* Changing habit or anchor tears the old subscription down first, then
  subscribes and fetches immediately instead of waiting for a change event.
* Teardown is synchronous and unconditional; anything the old subscription
  still has in flight is discarded by the view's generation check.
* A failed change-triggered fetch is reported on the view but the
  subscription keeps listening.
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from datetime import date
from typing import Callable, Optional

from habitlog.core.dates import clamp_anchor, today as utc_today
from habitlog.core.errors import FetchError, GatewayError, SubscriptionError
from habitlog.services.entities import ChangeEvent
from habitlog.services.gateway import Channel, DataGateway
from habitlog.services.log_view import HabitLogView
from habitlog.services.reconcile import reconcile

logger = logging.getLogger(__name__)


class SubscriptionState(str, enum.Enum):
    unsubscribed = "unsubscribed"
    subscribing = "subscribing"
    active = "active"
    failed = "failed"


@dataclass(eq=False)
class SubscriptionHandle:
    habit_id: str
    anchor: date
    generation: int
    state: SubscriptionState = SubscriptionState.subscribing
    channel: Optional[Channel] = None
    error: Optional[SubscriptionError] = None

    def release(self) -> None:
        if self.channel is not None:
            self.channel.unsubscribe()
        self.state = SubscriptionState.unsubscribed


class ChangeSubscriptionManager:
    def __init__(
        self,
        gateway: DataGateway,
        view: HabitLogView,
        clock: Callable[[], date] = utc_today,
    ):
        self._gateway = gateway
        self.view = view
        self._clock = clock
        self._handle: Optional[SubscriptionHandle] = None

    @property
    def handle(self) -> Optional[SubscriptionHandle]:
        return self._handle

    @property
    def state(self) -> SubscriptionState:
        return self._handle.state if self._handle else SubscriptionState.unsubscribed

    # -- lifecycle -------------------------------------------------------------

    async def subscribe(self, habit_id: str, anchor: Optional[date] = None) -> SubscriptionHandle:
        if not habit_id:
            raise ValueError("habit_id must be a non-empty string")
        anchor = clamp_anchor(anchor, self._clock())

        self._teardown()
        generation = self.view.begin(habit_id, anchor)
        handle = SubscriptionHandle(habit_id=habit_id, anchor=anchor, generation=generation)
        self._handle = handle

        try:
            channel = await self._gateway.subscribe_logs(habit_id, self._on_change(handle))
        except GatewayError as exc:
            error = SubscriptionError.from_gateway(exc)
            if handle.state is SubscriptionState.subscribing:
                handle.state = SubscriptionState.failed
                handle.error = error
                self.view.report(generation, error)
            logger.warning("Subscription for habit %s failed: %s", habit_id, exc.message)
            return handle

        if handle.state is not SubscriptionState.subscribing:
            # Torn down while the backend was acknowledging.
            channel.unsubscribe()
            return handle

        handle.channel = channel
        handle.state = SubscriptionState.active
        logger.info("Subscribed to habit %s logs (window ending %s)", habit_id, anchor)
        await self._reconcile(handle)
        return handle

    def unsubscribe(self, handle: SubscriptionHandle) -> None:
        """Release a subscription. Never suspends; safe to call twice."""
        if handle.state is SubscriptionState.unsubscribed:
            return
        handle.release()
        if self._handle is handle:
            self._handle = None
            self.view.invalidate()
        logger.info("Unsubscribed from habit %s logs", handle.habit_id)

    def _teardown(self) -> None:
        if self._handle is not None:
            self.unsubscribe(self._handle)

    def close(self) -> None:
        self._teardown()

    async def set_anchor(self, anchor: Optional[date]) -> SubscriptionHandle:
        if self._handle is None:
            raise RuntimeError("no habit is subscribed")
        return await self.subscribe(self._handle.habit_id, anchor)

    async def retry(self) -> bool:
        """Retry affordance: resubscribe after a failure, otherwise refetch."""
        handle = self._handle
        if handle is None:
            return False
        if handle.state is SubscriptionState.failed:
            handle = await self.subscribe(handle.habit_id, handle.anchor)
            return handle.state is SubscriptionState.active and self.view.error is None
        return await self.refresh()

    async def refresh(self) -> bool:
        """Re-reconcile the current window now."""
        if self._handle is None:
            return False
        return await self._reconcile(self._handle)

    # -- reconciliation --------------------------------------------------------

    def _on_change(self, handle: SubscriptionHandle):
        async def on_change(event: ChangeEvent) -> None:
            if handle.state is not SubscriptionState.active:
                logger.debug("Ignoring %s on released subscription %s", event.event_type, handle.habit_id)
                return
            await self._reconcile(handle)

        return on_change

    async def _reconcile(self, handle: SubscriptionHandle) -> bool:
        generation = handle.generation
        self.view.fetch_started(generation)
        try:
            logs = await reconcile(
                self._gateway, handle.habit_id, handle.anchor, self.view.window_days
            )
        except FetchError as exc:
            if self.view.report(generation, exc):
                logger.warning("Fetching logs for habit %s failed: %s", handle.habit_id, exc.message)
            return False
        finally:
            self.view.fetch_finished(generation)

        if not self.view.accept(generation, logs):
            logger.debug("Discarded stale window for habit %s", handle.habit_id)
            return False
        return True
