"""
Tests for the sliding-window rate limiter (in-memory fallback).
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from starlette.requests import Request

from onboarding.core import rate_limit
from onboarding.core.rate_limit import (
    RateLimitExceeded,
    check_rate_limit,
    client_key,
    enforce_rate_limit,
)


def make_request(host: str = "10.0.0.1") -> Request:
    scope = {"type": "http", "method": "POST", "path": "/", "headers": [], "client": (host, 5000)}
    return Request(scope)


@pytest.fixture(autouse=True)
def no_redis(monkeypatch):
    """Force the in-memory fallback."""
    monkeypatch.setattr(rate_limit, "get_redis", AsyncMock(return_value=None))
    rate_limit._memory_store.clear()
    yield
    rate_limit._memory_store.clear()


class TestCheckRateLimit:
    @pytest.mark.asyncio
    async def test_allows_up_to_limit(self):
        results = [await check_rate_limit("k", 3, 60) for _ in range(4)]
        assert results == [True, True, True, False]

    @pytest.mark.asyncio
    async def test_keys_are_independent(self):
        assert await check_rate_limit("a", 1, 60)
        assert not await check_rate_limit("a", 1, 60)
        assert await check_rate_limit("b", 1, 60)

    @pytest.mark.asyncio
    async def test_window_slides(self, monkeypatch):
        now = [1000.0]
        monkeypatch.setattr(rate_limit.time, "time", lambda: now[0])

        assert await check_rate_limit("k", 1, 60)
        assert not await check_rate_limit("k", 1, 60)
        now[0] += 61
        assert await check_rate_limit("k", 1, 60)

    @pytest.mark.asyncio
    async def test_redis_failure_falls_back_to_memory(self, monkeypatch):
        client = MagicMock()
        client.pipeline.side_effect = ConnectionError("redis down")
        monkeypatch.setattr(rate_limit, "get_redis", AsyncMock(return_value=client))

        assert await check_rate_limit("k", 1, 60)
        assert not await check_rate_limit("k", 1, 60)


class TestEnforceRateLimit:
    def test_client_key(self):
        assert client_key(make_request("1.2.3.4"), "invite_redeem") == (
            "rate_limit:invite_redeem:1.2.3.4"
        )

    @pytest.mark.asyncio
    async def test_raises_429(self):
        request = make_request()
        await enforce_rate_limit(request, "invite_redeem", 1, 30)

        with pytest.raises(RateLimitExceeded) as exc_info:
            await enforce_rate_limit(request, "invite_redeem", 1, 30)

        assert exc_info.value.status_code == 429
        assert exc_info.value.detail["error"] == "RATE_LIMIT_EXCEEDED"
        assert exc_info.value.headers == {"Retry-After": "30"}

    @pytest.mark.asyncio
    async def test_clients_limited_separately(self):
        await enforce_rate_limit(make_request("1.1.1.1"), "invite_redeem", 1, 30)
        await enforce_rate_limit(make_request("2.2.2.2"), "invite_redeem", 1, 30)
