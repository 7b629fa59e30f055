"""
Tests for the short-lived result cache and single-flight fetch collapsing.
"""

import asyncio

import pytest

from sheetcsv.cache import RequestKey, ResultCache, SingleFlight, TTLCache
from sheetcsv.errors import UpstreamError


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestRequestKey:
    def test_identical_parameters_equal(self):
        a = RequestKey.build("s", "Tab", use_tab_index=False, raw=False, header_row=2, allow_nullable_headers=False)
        b = RequestKey.build("s", "Tab", use_tab_index=False, raw=False, header_row=2, allow_nullable_headers=False)
        assert a == b and hash(a) == hash(b)

    def test_header_row_splits_key(self):
        a = RequestKey.build("s", "Tab", use_tab_index=False, raw=False, header_row=1, allow_nullable_headers=False)
        b = RequestKey.build("s", "Tab", use_tab_index=False, raw=False, header_row=2, allow_nullable_headers=False)
        assert a != b

    def test_raw_ignores_header_options(self):
        a = RequestKey.build("s", "Tab", use_tab_index=False, raw=True, header_row=1, allow_nullable_headers=False)
        b = RequestKey.build("s", "Tab", use_tab_index=False, raw=True, header_row=4, allow_nullable_headers=True)
        assert a == b
        assert "raw" in str(a)


class TestTTLCache:
    def test_hit_within_ttl_and_expiry_after(self):
        clock = FakeClock()
        cache = TTLCache(ttl_seconds=30, clock=clock)
        cache.set("k", [["a"]])
        clock.now += 29.9
        assert cache.get("k") == [["a"]]
        clock.now += 0.2
        assert cache.get("k") is None
        assert len(cache) == 0

    def test_empty_rows_are_a_hit(self):
        cache = TTLCache(ttl_seconds=30, clock=FakeClock())
        cache.set("k", [])
        assert cache.get("k") == []

    def test_insert_sweeps_expired_entries(self):
        clock = FakeClock()
        cache = TTLCache(ttl_seconds=30, clock=clock)
        cache.set("old1", 1)
        cache.set("old2", 2)
        clock.now += 31
        cache.set("new", 3)
        assert len(cache) == 1


class TestSingleFlight:
    @pytest.mark.asyncio
    async def test_concurrent_calls_share_one_execution(self):
        flight = SingleFlight()
        calls = 0

        async def work():
            nonlocal calls
            calls += 1
            await asyncio.sleep(0.01)
            return "rows"

        results = await asyncio.gather(*(flight.do("k", work) for _ in range(5)))
        assert results == ["rows"] * 5
        assert calls == 1
        assert not flight.in_flight("k")

    @pytest.mark.asyncio
    async def test_error_reaches_every_waiter(self):
        flight = SingleFlight()

        async def boom():
            await asyncio.sleep(0.01)
            raise UpstreamError("nope")

        results = await asyncio.gather(flight.do("k", boom), flight.do("k", boom), return_exceptions=True)
        assert all(isinstance(r, UpstreamError) for r in results)


class TestResultCache:
    @pytest.mark.asyncio
    async def test_second_request_within_ttl_does_not_refetch(self):
        clock = FakeClock()
        cache = ResultCache(ttl_seconds=30, clock=clock)
        fetches = 0

        async def fetch():
            nonlocal fetches
            fetches += 1
            return [["x"]]

        await cache.get_or_fetch("k", fetch)
        clock.now += 10
        await cache.get_or_fetch("k", fetch)
        assert fetches == 1
        clock.now += 25
        await cache.get_or_fetch("k", fetch)
        assert fetches == 2

    @pytest.mark.asyncio
    async def test_failed_fetch_is_not_cached(self):
        cache = ResultCache(ttl_seconds=30, clock=FakeClock())
        attempts = 0

        async def flaky():
            nonlocal attempts
            attempts += 1
            if attempts == 1:
                raise UpstreamError("Sheets API error 503: backend unavailable")
            return [["ok"]]

        with pytest.raises(UpstreamError):
            await cache.get_or_fetch("k", flaky)
        assert cache.entries.get("k") is None
        assert await cache.get_or_fetch("k", flaky) == [["ok"]]
        assert attempts == 2
