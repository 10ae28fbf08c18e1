"""
QueryCache — keyed results with prefix invalidation.

Keys are tuples whose first element names the collection, e.g.
("habits", user_id). `invalidate("habits")` marks every key under that
collection stale; the next `get` refetches. Owned by the application
context, never a module global.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Hashable


@dataclass
class CacheEntry:
    value: Any
    stale: bool = False


HABITS_KEY = "habits"
STATISTICS_KEY = "habit-statistics"


class QueryCache:
    def __init__(self):
        self._entries: dict[tuple, CacheEntry] = {}

    async def get(self, key: tuple, loader: Callable[[], Awaitable[Any]]) -> Any:
        entry = self._entries.get(key)
        if entry is not None and not entry.stale:
            return entry.value
        value = await loader()
        self._entries[key] = CacheEntry(value)
        return value

    def is_stale(self, key: tuple) -> bool:
        entry = self._entries.get(key)
        return entry is None or entry.stale

    def invalidate(self, prefix: Hashable) -> int:
        """Mark every key starting with `prefix` stale. Returns keys touched."""
        touched = 0
        for key, entry in self._entries.items():
            if key and key[0] == prefix:
                entry.stale = True
                touched += 1
        return touched

    def clear(self) -> None:
        self._entries.clear()
