"""
Tests for the change subscription manager: lifecycle, stale-result
discarding and failure handling.
"""
import asyncio
from datetime import date, timedelta

import pytest

from habitlog.core.errors import AUTH_FAILED, ErrorKind, FetchError, SubscriptionError
from habitlog.models.habit_log import LogStatus
from habitlog.schemas.rows import HABIT_LOGS
from habitlog.services.log_view import HabitLogView
from habitlog.services.subscription import ChangeSubscriptionManager, SubscriptionState

TODAY = date(2099, 6, 15)


def _manager(fake, window_days=7):
    view = HabitLogView(window_days)
    return ChangeSubscriptionManager(fake, view, clock=lambda: TODAY), view


async def _settle():
    for _ in range(5):
        await asyncio.sleep(0)


class TestSubscribe:
    def test_subscribe_activates_and_fetches(self, fake):
        fake.add_log("h1", TODAY, "achieved", log_id="L1")
        manager, view = _manager(fake)

        async def scenario():
            return await manager.subscribe("h1")

        handle = asyncio.run(scenario())
        assert handle.state == SubscriptionState.active
        assert manager.state == SubscriptionState.active
        assert fake.count("subscribe") == 1
        assert fake.count("query") == 1
        assert view.habit_id == "h1"
        assert len(view.logs) == 7
        assert view.logs[-1].status == LogStatus.achieved
        assert not view.is_loading

    def test_future_anchor_clamped_to_today(self, fake):
        manager, view = _manager(fake)
        asyncio.run(manager.subscribe("h1", TODAY + timedelta(days=10)))
        assert view.anchor == TODAY
        assert view.logs[-1].date == TODAY

    def test_empty_habit_id_rejected(self, fake):
        manager, _ = _manager(fake)
        with pytest.raises(ValueError):
            asyncio.run(manager.subscribe(""))

    def test_change_event_triggers_refetch(self, fake):
        manager, view = _manager(fake)

        async def scenario():
            await manager.subscribe("h1")
            row = fake.add_log("h1", TODAY - timedelta(days=1), "not_achieved", log_id="L9")
            await fake.emit(new=row)

        asyncio.run(scenario())
        assert fake.count("query") == 2
        assert view.logs[-2].id == "L9"
        assert view.logs[-2].status == LogStatus.not_achieved

    def test_events_for_other_habits_ignored(self, fake):
        manager, _ = _manager(fake)

        async def scenario():
            await manager.subscribe("h1")
            await fake.emit(new={"habit_id": "h2", "date": "2099-06-15"})

        asyncio.run(scenario())
        assert fake.count("query") == 1


class TestTeardown:
    def test_switching_habit_releases_previous_channel_first(self, fake):
        manager, view = _manager(fake)

        async def scenario():
            await manager.subscribe("h1")
            await manager.subscribe("h2")

        asyncio.run(scenario())
        first, second = fake.channels
        assert first.closed
        assert not second.closed
        assert view.habit_id == "h2"
        assert all(cell.habit_id == "h2" for cell in view.logs)

    def test_changing_anchor_resubscribes(self, fake):
        manager, view = _manager(fake)

        async def scenario():
            await manager.subscribe("h1")
            await manager.set_anchor(date(2099, 5, 31))

        asyncio.run(scenario())
        assert fake.channels[0].closed
        assert view.anchor == date(2099, 5, 31)
        assert view.logs[0].date == date(2099, 5, 25)

    def test_unsubscribe_stops_refetching(self, fake):
        manager, view = _manager(fake)

        async def scenario():
            handle = await manager.subscribe("h1")
            manager.unsubscribe(handle)
            manager.unsubscribe(handle)
            await fake.emit(new={"habit_id": "h1", "date": "2099-06-15"})
            return handle

        handle = asyncio.run(scenario())
        assert handle.state == SubscriptionState.unsubscribed
        assert manager.state == SubscriptionState.unsubscribed
        assert fake.channels[0].closed
        assert fake.count("query") == 1

    def test_torn_down_while_acknowledging(self, fake):
        manager, _ = _manager(fake)

        async def scenario():
            gate = fake.hold("subscribe")
            task = asyncio.create_task(manager.subscribe("h1"))
            await _settle()
            manager.close()
            gate.set()
            return await task

        handle = asyncio.run(scenario())
        assert handle.state == SubscriptionState.unsubscribed
        assert fake.channels[0].closed
        assert fake.count("query") == 0


class TestStaleResults:
    def test_late_window_for_previous_habit_discarded(self, fake):
        fake.add_log("h1", TODAY, "achieved", log_id="A")
        fake.add_log("h2", TODAY, "not_achieved", log_id="B")
        manager, view = _manager(fake)

        async def scenario():
            gate = fake.hold("query")
            slow = asyncio.create_task(manager.subscribe("h1"))
            await _settle()
            await manager.subscribe("h2")
            gate.set()
            await slow

        asyncio.run(scenario())
        assert view.habit_id == "h2"
        assert view.logs[-1].id == "B"
        assert all(cell.habit_id == "h2" for cell in view.logs)
        assert not view.is_loading

    def test_late_failure_for_previous_habit_not_reported(self, fake):
        manager, view = _manager(fake)

        async def scenario():
            gate = fake.hold("query")
            slow = asyncio.create_task(manager.subscribe("h1"))
            await _settle()
            await manager.subscribe("h2")
            # Only the parked h1 query is left to consume this failure
            fake.fail("query")
            gate.set()
            await slow

        asyncio.run(scenario())
        assert view.habit_id == "h2"
        assert view.error is None
        assert len(view.logs) == 7

    def test_last_completed_fetch_replaces_window(self, fake):
        today_row = fake.add_log("h1", TODAY, "achieved", log_id="L1")
        manager, view = _manager(fake)

        async def scenario():
            initial_gate = fake.hold("query")
            change_gate = fake.hold("query")
            initial = asyncio.create_task(manager.subscribe("h1"))
            await _settle()
            extra = fake.add_log("h1", TODAY - timedelta(days=1), "not_achieved", log_id="L2")
            change = asyncio.create_task(fake.emit(new=extra))
            await _settle()

            # The change-triggered fetch finishes first...
            change_gate.set()
            await change
            after_change = list(view.logs)

            # ...then the initial fetch completes against newer backend state.
            fake.rows[HABIT_LOGS].remove(extra)
            today_row["notes"] = "edited"
            initial_gate.set()
            await initial
            return after_change

        after_change = asyncio.run(scenario())
        assert after_change[-2].id == "L2"
        assert after_change[-1].notes == ""
        # Replaced in full: L2 from the earlier result is not merged in
        assert view.logs[-2].id is None
        assert view.logs[-1].notes == "edited"
        assert len(view.logs) == 7
        assert not view.is_loading


class TestFailures:
    def test_subscribe_failure_marks_failed(self, fake):
        fake.fail("subscribe", AUTH_FAILED)
        manager, view = _manager(fake)

        handle = asyncio.run(manager.subscribe("h1"))

        assert handle.state == SubscriptionState.failed
        assert isinstance(view.error, SubscriptionError)
        assert view.error.kind == ErrorKind.authentication
        assert fake.count("query") == 0

    def test_retry_after_failure_resubscribes(self, fake):
        fake.fail("subscribe")
        manager, view = _manager(fake)

        async def scenario():
            await manager.subscribe("h1")
            return await manager.retry()

        assert asyncio.run(scenario()) is True
        assert manager.state == SubscriptionState.active
        assert view.error is None
        assert len(view.logs) == 7

    def test_failed_refetch_keeps_listening(self, fake):
        fake.add_log("h1", TODAY, "achieved", log_id="L1")
        manager, view = _manager(fake)

        async def scenario():
            await manager.subscribe("h1")
            fake.fail("query")
            await fake.emit(new={"habit_id": "h1", "date": "2099-06-15"})
            snapshot = (list(view.logs), view.error)
            await fake.emit(new={"habit_id": "h1", "date": "2099-06-15"})
            return snapshot

        logs_after_failure, error_after_failure = asyncio.run(scenario())
        assert isinstance(error_after_failure, FetchError)
        assert error_after_failure.kind == ErrorKind.network
        # Previously shown window survives the failed fetch
        assert logs_after_failure[-1].id == "L1"
        assert manager.state == SubscriptionState.active
        assert not fake.channels[0].closed
        # The next successful fetch clears the error
        assert view.error is None

    def test_retry_when_active_refetches(self, fake):
        manager, _ = _manager(fake)

        async def scenario():
            await manager.subscribe("h1")
            return await manager.retry()

        assert asyncio.run(scenario()) is True
        assert fake.count("query") == 2
        assert fake.count("subscribe") == 1

    def test_retry_without_subscription(self, fake):
        manager, _ = _manager(fake)
        assert asyncio.run(manager.retry()) is False
