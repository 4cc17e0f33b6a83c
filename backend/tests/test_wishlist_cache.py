import json
from unittest.mock import AsyncMock

import pytest

from wishlists_app.core.cache_null import NullWishlistCache
from wishlists_app.core.wishlist_cache import WishlistCache


@pytest.mark.anyio
async def test_get_returns_none_when_redis_unavailable():
    cache = WishlistCache(redis_dsn="redis://nonexistent:6379", enabled=True)
    result = await cache.get_detail("slug", "guest")
    assert result is None


@pytest.mark.anyio
async def test_set_returns_false_when_redis_unavailable():
    cache = WishlistCache(redis_dsn="redis://nonexistent:6379", enabled=True)
    ok = await cache.set_detail("slug", "guest", {"title": "Test"}, visibility="public")
    assert ok is False
    assert (await cache.get_stats())["connect_failures"] == 1


@pytest.mark.anyio
async def test_detail_cache_roundtrip():
    cache = WishlistCache(redis_dsn="redis://mock:6379", ttl_public=60, ttl_private=10, enabled=True)
    mock_redis = AsyncMock()
    mock_redis.get = AsyncMock(return_value=json.dumps({"slug": "noel", "items": []}))
    mock_redis.setex = AsyncMock(return_value=True)
    cache._redis = mock_redis

    stored = await cache.get_detail("noel", "guest")
    assert stored == {"slug": "noel", "items": []}
    mock_redis.get.assert_awaited_once_with("wishlist:detail:noel:guest")

    ok = await cache.set_detail("noel", "owner", {"slug": "noel"}, visibility="shared")
    assert ok is True
    key, ttl, value = mock_redis.setex.await_args.args
    assert key == "wishlist:detail:noel:owner"
    assert ttl == 10
    assert json.loads(value) == {"slug": "noel"}


@pytest.mark.anyio
async def test_memory_fallback_roundtrip_and_invalidate():
    cache = WishlistCache(redis_dsn="", enabled=True, memory_fallback=True)

    assert await cache.set_detail("noel", "member", {"title": "Noël"}, visibility="public") is True
    assert await cache.set_detail("noel", "guest", {"title": "Noël"}, visibility="public") is True
    assert await cache.get_detail("noel", "member") == {"title": "Noël"}
    assert await cache.get_detail("noel", "owner") is None

    assert await cache.invalidate_wishlist("noel") == 2
    assert await cache.get_detail("noel", "member") is None

    stats = await cache.get_stats()
    assert stats["hits"] == 1
    assert stats["misses"] == 2
    assert stats["sets"] == 2
    assert stats["memory_entries"] == 0


@pytest.mark.anyio
async def test_no_fallback_stores_nothing():
    cache = WishlistCache(redis_dsn="", enabled=True, memory_fallback=False)

    assert await cache.set_detail("noel", "guest", {"title": "Noël"}) is False
    assert await cache.get_detail("noel", "guest") is None
    assert await cache.ping() is False


@pytest.mark.anyio
async def test_disabled_cache_is_a_no_op():
    cache = WishlistCache(redis_dsn="", enabled=False, memory_fallback=True)

    assert await cache.set_detail("noel", "guest", {"title": "Noël"}) is False
    assert await cache.get_detail("noel", "guest") is None


@pytest.mark.anyio
async def test_invalidate_deletes_every_audience_in_redis():
    cache = WishlistCache(redis_dsn="redis://mock:6379", enabled=True)
    mock_redis = AsyncMock()
    mock_redis.delete = AsyncMock(return_value=3)
    cache._redis = mock_redis

    assert await cache.invalidate_wishlist("noel") == 3
    mock_redis.delete.assert_awaited_once_with(
        "wishlist:detail:noel:owner",
        "wishlist:detail:noel:member",
        "wishlist:detail:noel:guest",
    )


@pytest.mark.anyio
async def test_null_cache():
    cache = NullWishlistCache()

    assert await cache.get_detail("noel", "guest") is None
    assert await cache.set_detail("noel", "guest", {}) is False
    assert await cache.invalidate_wishlist("noel") == 0
    assert await cache.get_stats() == {"enabled": False}
