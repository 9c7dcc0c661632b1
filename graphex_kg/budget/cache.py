"""
Cache Store

Key/value cache used for usage running totals and orchestrator results.

Backends:
    InMemoryCacheStore: process-local dict, used by default and in tests
    DiskCacheStore: diskcache directory shared across CLI runs

Callers treat every cache failure as a miss (reads) or a no-op (writes); the
cache is never the source of truth.
"""

from __future__ import annotations

import asyncio
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from pathlib import Path
from typing import Any

from diskcache import Cache


class CacheStore(ABC):
    """Abstract interface for the cache collaborator."""

    @abstractmethod
    async def get(self, key: str) -> Any | None:
        """Return the cached value, or None on miss/expiry."""
        ...

    @abstractmethod
    async def set_with_ttl(self, key: str, value: Any, ttl_seconds: int) -> None:
        """Store a value that expires after ttl_seconds."""
        ...

    @abstractmethod
    async def increment_float(self, key: str, delta: float) -> float:
        """Add delta to a numeric value (missing keys start at 0). Returns the new value."""
        ...


class InMemoryCacheStore(CacheStore):
    """
    Process-local cache with per-key TTLs.

    Expiry uses a monotonic clock (injectable for tests). Increments keep
    the key's existing expiry.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._data: dict[str, tuple[Any, float | None]] = {}
        self._lock = asyncio.Lock()

    def _live(self, key: str) -> tuple[Any, float | None] | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        _, expires_at = entry
        if expires_at is not None and self._clock() >= expires_at:
            del self._data[key]
            return None
        return entry

    async def get(self, key: str) -> Any | None:
        entry = self._live(key)
        return entry[0] if entry is not None else None

    async def set_with_ttl(self, key: str, value: Any, ttl_seconds: int) -> None:
        self._data[key] = (value, self._clock() + ttl_seconds)

    async def increment_float(self, key: str, delta: float) -> float:
        async with self._lock:
            entry = self._live(key)
            current, expires_at = entry if entry is not None else (0.0, None)
            new_value = float(current) + delta
            self._data[key] = (new_value, expires_at)
            return new_value

    def __len__(self) -> int:
        return len(self._data)


class DiskCacheStore(CacheStore):
    """
    Cache persisted in a diskcache directory.

    Lets running totals and generated artifacts survive between processes.
    diskcache is synchronous, so calls run in a worker thread.

    Args:
        directory: Cache directory (created if missing)
    """

    def __init__(self, directory: str | Path) -> None:
        self._cache = Cache(str(directory))

    async def get(self, key: str) -> Any | None:
        return await asyncio.to_thread(self._cache.get, key)

    async def set_with_ttl(self, key: str, value: Any, ttl_seconds: int) -> None:
        await asyncio.to_thread(self._cache.set, key, value, expire=ttl_seconds)

    async def increment_float(self, key: str, delta: float) -> float:
        def _increment() -> float:
            with self._cache.transact():
                current, expire_time = self._cache.get(key, default=0.0, expire_time=True)
                new_value = float(current) + delta
                # Keep the key's absolute expiry
                expire = None
                if expire_time is not None:
                    expire = max(expire_time - time.time(), 0.0)
                self._cache.set(key, new_value, expire=expire)
                return new_value

        return await asyncio.to_thread(_increment)

    def close(self) -> None:
        self._cache.close()

    def __len__(self) -> int:
        return len(self._cache)
