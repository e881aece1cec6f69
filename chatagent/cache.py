"""
In-process caches.

`TTLCache` is an async, time-bounded cache used for discovered connector
tools. `KeyedCache` memoizes constructed chat model clients.
"""
import asyncio
import time
from typing import Any, Awaitable, Callable, Hashable


class TTLCache:
    """Async cache whose entries expire `ttl` seconds after they were stored.

    Concurrent misses for the same key are collapsed by a lock so the
    factory runs once. Failures are not cached; callers that want a
    failure remembered return a sentinel value (e.g. an empty list).
    """

    def __init__(self, ttl: float, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[Hashable, tuple[Any, float]] = {}
        self._lock = asyncio.Lock()

    def _fresh(self, key: Hashable) -> bool:
        entry = self._entries.get(key)
        return entry is not None and self._clock() - entry[1] < self.ttl

    def get(self, key: Hashable, default: Any = None) -> Any:
        """Return the cached value if it has not expired."""
        if self._fresh(key):
            return self._entries[key][0]
        return default

    def set(self, key: Hashable, value: Any) -> None:
        self._entries[key] = (value, self._clock())

    def invalidate(self, key: Hashable = None) -> None:
        if key is None:
            self._entries.clear()
        else:
            self._entries.pop(key, None)

    async def get_or_create(self, key: Hashable, factory: Callable[[], Awaitable[Any]]) -> Any:
        if self._fresh(key):
            return self._entries[key][0]
        async with self._lock:
            if self._fresh(key):
                return self._entries[key][0]
            value = await factory()
            self.set(key, value)
            return value


class KeyedCache:
    """Unbounded memo table for objects that are expensive to construct."""

    def __init__(self):
        self._entries: dict[Hashable, Any] = {}

    def __contains__(self, key: Hashable) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def get_or_create(self, key: Hashable, factory: Callable[[], Any]) -> Any:
        if key not in self._entries:
            self._entries[key] = factory()
        return self._entries[key]

    def clear(self) -> None:
        self._entries.clear()
