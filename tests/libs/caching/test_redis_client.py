"""Tests for the process-scoped Redis client manager."""

import pytest

from libs.caching import redis_client as redis_module
from libs.caching.redis_client import close_redis_client, get_redis_client, reset_redis_client


@pytest.fixture(autouse=True)
async def reset_client():
    await reset_redis_client()
    yield
    await reset_redis_client()


@pytest.mark.asyncio
async def test_no_url_returns_none():
    """Without a URL callers fall back to in-memory stores."""
    assert await get_redis_client(None) is None


@pytest.mark.asyncio
async def test_client_is_reused(monkeypatch, redis_client):
    created = []

    def fake_from_url(url, **kwargs):
        created.append(url)
        return redis_client

    monkeypatch.setattr(redis_module.redis, "from_url", fake_from_url)

    first = await get_redis_client("redis://localhost:6379/9")
    second = await get_redis_client("redis://localhost:6379/9")

    assert first is redis_client
    assert second is first
    assert created == ["redis://localhost:6379/9"]


@pytest.mark.asyncio
async def test_connection_failure_returns_none(monkeypatch):
    class Unreachable:
        async def ping(self):
            raise redis_module.redis.ConnectionError("connection refused")

    monkeypatch.setattr(redis_module.redis, "from_url", lambda url, **kwargs: Unreachable())

    assert await get_redis_client("redis://unreachable:6379/0") is None
    # Subsequent calls do not retry the failed connection
    assert await get_redis_client("redis://unreachable:6379/0") is None


@pytest.mark.asyncio
async def test_close_without_client_is_noop():
    await close_redis_client()
