"""
HabitLogView — the state one habit view owns.

Holds the current reconciled window, the set of days with an in-flight
write, the last surfaced error and a generation counter. Every context
switch (new habit, new anchor, teardown) bumps the generation; work that
started under an older generation is discarded when it lands, which is
the only guard against late results overwriting another habit's window.
"""
from __future__ import annotations

import dataclasses
from collections import Counter
from datetime import date
from typing import Callable, Optional

from habitlog.core.errors import CoreError
from habitlog.models.habit_log import LogStatus
from habitlog.services.entities import HabitLogEntry

Listener = Callable[["HabitLogView"], None]


class HabitLogView:
    def __init__(self, window_days: int = 7):
        if window_days < 1:
            raise ValueError(f"window_days must be a positive integer, got {window_days}")
        self.window_days = window_days
        self.habit_id: Optional[str] = None
        self.anchor: Optional[date] = None
        self.generation = 0
        self.logs: list[HabitLogEntry] = []
        self.error: Optional[CoreError] = None
        self._updating: Counter = Counter()
        # Bumped only when the habit changes; busy marks survive anchor moves.
        self._habit_epoch = 0
        self._loading = 0
        self._listeners: list[Listener] = []

    # -- observers -------------------------------------------------------------

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)

    # -- context ---------------------------------------------------------------

    def begin(self, habit_id: str, anchor: date) -> int:
        """Switch to a new (habit, anchor) context; returns its generation."""
        self.generation += 1
        if habit_id != self.habit_id:
            self.logs = []
            self._updating.clear()
            self._habit_epoch += 1
        self.habit_id = habit_id
        self.anchor = anchor
        self.error = None
        self._loading = 0
        self._notify()
        return self.generation

    def invalidate(self) -> None:
        """Orphan all in-flight work without touching the displayed data."""
        self.generation += 1
        self._loading = 0

    def is_current(self, generation: int) -> bool:
        return generation == self.generation

    # -- fetch results ---------------------------------------------------------

    @property
    def is_loading(self) -> bool:
        return self._loading > 0

    def fetch_started(self, generation: int) -> None:
        if self.is_current(generation):
            self._loading += 1
            self._notify()

    def fetch_finished(self, generation: int) -> None:
        if self.is_current(generation) and self._loading:
            self._loading -= 1
            self._notify()

    def accept(self, generation: int, logs: list[HabitLogEntry]) -> bool:
        """Replace the window in full; the latest completed fetch wins."""
        if not self.is_current(generation):
            return False
        self.logs = list(logs)
        self.error = None
        self._notify()
        return True

    def report(self, generation: int, error: CoreError) -> bool:
        if not self.is_current(generation):
            return False
        self.error = error
        self._notify()
        return True

    # -- optimistic edits ------------------------------------------------------

    def entry_for(self, day: date) -> Optional[HabitLogEntry]:
        return next((e for e in self.logs if e.date == day), None)

    def _replace(self, day: date, **changes) -> bool:
        for i, entry in enumerate(self.logs):
            if entry.date == day:
                self.logs[i] = dataclasses.replace(entry, **changes)
                self._notify()
                return True
        return False

    def apply_local(self, day: date, status: LogStatus, notes: str) -> Optional[HabitLogEntry]:
        """Apply an edit to the shown cell; returns the edited cell, None if off-window."""
        if not self._replace(day, status=status, notes=notes):
            return None
        return self.entry_for(day)

    def confirm(self, generation: int, entry: HabitLogEntry) -> bool:
        """Attach the persisted id; local status/notes stay authoritative."""
        if not self.is_current(generation):
            return False
        return self._replace(entry.date, id=entry.id)

    def revert(self, generation: int, applied: HabitLogEntry, previous: HabitLogEntry) -> bool:
        """Put `previous` back unless a later edit or fetch already replaced `applied`."""
        if not self.is_current(generation) or self.entry_for(applied.date) != applied:
            return False
        return self._replace(
            applied.date, status=previous.status, notes=previous.notes, id=previous.id,
        )

    # -- busy cells ------------------------------------------------------------

    @property
    def updating(self) -> frozenset:
        return frozenset(day for day, n in self._updating.items() if n > 0)

    def is_updating(self, day: date) -> bool:
        return self._updating[day] > 0

    def mark_updating(self, day: date) -> int:
        """Mark `day` busy; returns the token `clear_updating` needs."""
        self._updating[day] += 1
        self._notify()
        return self._habit_epoch

    def clear_updating(self, epoch: int, day: date) -> None:
        if epoch != self._habit_epoch or self._updating[day] <= 0:
            return
        self._updating[day] -= 1
        if self._updating[day] <= 0:
            del self._updating[day]
        self._notify()
