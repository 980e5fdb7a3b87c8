"""Process-local cache with per-entry expiration."""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Any, Callable, Union

Seconds = Union[int, float, timedelta]


class CacheBackend(ABC):
    """Key-value store with TTL. Values are opaque to the cache."""

    @abstractmethod
    async def get(self, key: str) -> Any | None:
        """Return the live value for ``key`` or None when absent or expired."""

    @abstractmethod
    async def set(self, key: str, value: Any, ttl: Seconds) -> None:
        """Store ``value`` until ``now + ttl``, replacing any previous entry."""


class MemoryCache(CacheBackend):
    """In-memory cache keyed by string fingerprints."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        # key -> (value, expires_at)
        self._data: dict[str, tuple[Any, float]] = {}
        self._clock = clock

    async def get(self, key: str) -> Any | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._data[key]
            return None
        return value

    async def set(self, key: str, value: Any, ttl: Seconds) -> None:
        if isinstance(ttl, timedelta):
            ttl = ttl.total_seconds()
        self._data[key] = (value, self._clock() + ttl)

    def clear(self) -> None:
        self._data.clear()

    def __len__(self) -> int:
        return len(self._data)
