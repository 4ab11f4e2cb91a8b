"""Tests for the short-TTL response cache and identifier cache."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from pairwatch.cache import IdentifierCache, ResponseCache, cache_key
from pairwatch.exceptions import NetworkError


class FakeClock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


class TestCacheKey:
    def test_namespaced_and_joined(self):
        assert cache_key("chart", "simple-price", "pepe", "usd") == "chart:simple-price:pepe:usd"

    def test_namespaces_do_not_collide(self):
        assert cache_key("ledger", "price", "x") != cache_key("chart", "price", "x")

    def test_case_preserved(self):
        assert cache_key("ledger", "token-swaps", "Cursor").endswith("Cursor")


class TestResponseCache:
    def test_expires_after_ttl(self):
        clock = FakeClock()
        cache = ResponseCache(ttl_seconds=15, clock=clock)
        cache.set("k", {"v": 1})

        clock.now += 14.9
        assert cache.get("k") == {"v": 1}
        clock.now += 0.1
        assert cache.get("k") is None

    @pytest.mark.asyncio
    async def test_get_or_fetch_caches(self):
        cache = ResponseCache()
        fetch = AsyncMock(return_value="data")

        assert await cache.get_or_fetch("k", fetch) == "data"
        assert await cache.get_or_fetch("k", fetch) == "data"

        fetch.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_concurrent_requests_share_one_fetch(self):
        cache = ResponseCache()
        calls = 0

        async def fetch():
            nonlocal calls
            calls += 1
            await asyncio.sleep(0.01)
            return "data"

        results = await asyncio.gather(*(cache.get_or_fetch("k", fetch) for _ in range(5)))

        assert results == ["data"] * 5
        assert calls == 1

    @pytest.mark.asyncio
    async def test_failures_not_cached(self):
        cache = ResponseCache()
        fetch = AsyncMock(side_effect=[NetworkError("down"), "data"])

        with pytest.raises(NetworkError):
            await cache.get_or_fetch("k", fetch)
        assert await cache.get_or_fetch("k", fetch) == "data"

    def test_purge_expired(self):
        clock = FakeClock()
        cache = ResponseCache(ttl_seconds=10, clock=clock)
        cache.set("old", 1)
        clock.now += 5
        cache.set("new", 2)
        clock.now += 6

        assert cache.purge_expired() == 1
        assert len(cache) == 1

    def test_expired_keys_do_not_accumulate(self):
        clock = FakeClock()
        cache = ResponseCache(ttl_seconds=15, clock=clock)

        for i in range(1000):
            cache.set(f"ledger:token-swaps:eth:0xabc:200:cursor{i}", [i])
            clock.now += 20

        assert len(cache) == 1

    def test_write_keeps_fresh_entries(self):
        clock = FakeClock()
        cache = ResponseCache(ttl_seconds=15, clock=clock)
        cache.set("a", 1)
        clock.now += 10
        cache.set("b", 2)

        assert cache.get("a") == 1
        assert len(cache) == 2


class TestIdentifierCache:
    def test_keyed_by_provider_chain_address(self):
        cache = IdentifierCache()
        cache.set("chart", "0x1", "0xABC", "token")

        assert cache.get("chart", "0X1", "0xabc") == "token"
        assert cache.get("chart", "0x38", "0xabc") is None
        assert cache.get("other", "0x1", "0xabc") is None
