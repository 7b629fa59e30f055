# sheetcsv/cache.py
# Short-lived in-process result cache for tabular fetches, plus the
# single-flight group that makes concurrent identical misses share one fetch.
from __future__ import annotations
import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Hashable, Optional, Tuple

logger = logging.getLogger(__name__)

CACHE_TTL_S_DEFAULT = 30.0


@dataclass(frozen=True)
class RequestKey:
    resource_id: str
    tab: str
    use_tab_index: bool = False
    raw: bool = False
    header_row: Optional[int] = 1
    allow_nullable_headers: bool = False

    @classmethod
    def build(cls, resource_id: str, tab: str, *, use_tab_index: bool, raw: bool,
              header_row: int, allow_nullable_headers: bool) -> "RequestKey":
        # raw output ignores header parsing, so those options must not split the key
        if raw:
            return cls(resource_id, tab, use_tab_index, True, None, False)
        return cls(resource_id, tab, use_tab_index, False, header_row, allow_nullable_headers)

    def __str__(self) -> str:
        if self.raw:
            return f"{self.resource_id}::{self.tab}::raw::useTabIndex={self.use_tab_index}"
        return (f"{self.resource_id}::{self.tab}::headerRow={self.header_row}"
                f"::allowNullableHeaders={self.allow_nullable_headers}::useTabIndex={self.use_tab_index}")


class TTLCache:
    """Fixed-TTL mapping with no capacity bound.

    Expired entries are dropped when looked up and by a sweep on every insert,
    so keys that are never requested again do not accumulate forever.
    """

    def __init__(self, ttl_seconds: float = CACHE_TTL_S_DEFAULT,
                 clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl_seconds
        self._clock = clock
        self._store: Dict[Hashable, Tuple[float, Any]] = {}  # key -> (expires_at, value)

    def __len__(self) -> int:
        return len(self._store)

    def get(self, key: Hashable) -> Optional[Any]:
        entry = self._store.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if expires_at > self._clock():
            return value
        del self._store[key]
        logger.info("Cache expired for key: %s", key)
        return None

    def set(self, key: Hashable, value: Any) -> None:
        now = self._clock()
        self._sweep(now)
        self._store[key] = (now + self.ttl, value)

    def _sweep(self, now: float) -> None:
        expired = [k for k, (exp, _) in self._store.items() if exp <= now]
        for k in expired:
            del self._store[k]
            logger.info("Cache expired for key: %s", k)


class SingleFlight:
    """Collapse concurrent calls with the same key onto one running task."""

    def __init__(self) -> None:
        self._inflight: Dict[Hashable, asyncio.Future] = {}

    def in_flight(self, key: Hashable) -> bool:
        return key in self._inflight

    async def do(self, key: Hashable, fn: Callable[[], Awaitable[Any]]) -> Any:
        fut = self._inflight.get(key)
        if fut is not None:
            logger.info("Joining in-flight fetch for key: %s", key)
            return await asyncio.shield(fut)

        fut = asyncio.ensure_future(fn())
        self._inflight[key] = fut
        def _done(f: asyncio.Future) -> None:
            self._inflight.pop(key, None)
            if not f.cancelled():
                f.exception()  # mark retrieved

        fut.add_done_callback(_done)
        return await asyncio.shield(fut)


class ResultCache:
    """get-or-fetch over TTLCache + SingleFlight. A failed fetch is never stored."""

    def __init__(self, ttl_seconds: float = CACHE_TTL_S_DEFAULT,
                 clock: Callable[[], float] = time.monotonic):
        self.entries = TTLCache(ttl_seconds, clock)
        self.flight = SingleFlight()

    async def get_or_fetch(self, key: Hashable, fetch: Callable[[], Awaitable[Any]]) -> Any:
        cached = self.entries.get(key)
        if cached is not None:
            logger.info("Cache hit for key: %s", key)
            return cached
        logger.info("Cache miss for key: %s", key)

        async def _fetch_and_store() -> Any:
            value = await fetch()
            self.entries.set(key, value)
            return value

        return await self.flight.do(key, _fetch_and_store)
