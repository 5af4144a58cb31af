"""TTL cache that collapses concurrent lookups for the same key into one fetch."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Generic, Hashable, Optional, TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry(Generic[T]):
    value: T
    fetched_at: float


class SingleflightCache(Generic[T]):
    """
    Cache upstream lookups for ``ttl_seconds`` and share in-flight fetches.

    Results are stored even when they are ``None`` so a missing upstream
    resource is not requested again until the entry expires. A fetch that
    raises is not cached; every caller waiting on it receives the exception.

    The freshness check and the in-flight registration happen without an
    intervening ``await``, which makes them atomic under a single event loop.
    """

    def __init__(
        self,
        *,
        ttl_seconds: float,
        name: str = "cache",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds
        self._name = name
        self._clock = clock
        self._entries: Dict[Hashable, CacheEntry[T]] = {}
        self._inflight: Dict[Hashable, asyncio.Task] = {}

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    async def get(
        self,
        key: Hashable,
        fetch: Callable[[], Awaitable[T]],
        *,
        ttl_seconds: Optional[float] = None,
    ) -> T:
        """Return a fresh cached value for ``key`` or fetch it exactly once."""
        ttl = self._ttl if ttl_seconds is None else ttl_seconds
        entry = self._entries.get(key)
        if entry is not None and self._clock() - entry.fetched_at < ttl:
            return entry.value

        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._populate(key, fetch))
            self._inflight[key] = task
        else:
            logger.debug("%s: joining in-flight fetch for %r", self._name, key)

        # Shield so an abandoned request does not cancel the shared fetch.
        return await asyncio.shield(task)

    async def _populate(self, key: Hashable, fetch: Callable[[], Awaitable[T]]) -> T:
        try:
            value = await fetch()
            self._entries[key] = CacheEntry(value=value, fetched_at=self._clock())
            return value
        finally:
            self._inflight.pop(key, None)

    def peek(self, key: Hashable) -> Optional[CacheEntry[T]]:
        return self._entries.get(key)

    def invalidate(self, key: Hashable) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


__all__ = ["CacheEntry", "SingleflightCache"]
