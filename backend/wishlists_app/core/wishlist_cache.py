import asyncio
import json
import logging
import os
import time
from typing import Any

import redis.asyncio as redis

from wishlists_app.core.config import settings


logger = logging.getLogger("wishlists.cache")

# audiences a detail payload is cached for; owners get masked items
CACHE_AUDIENCES = ("owner", "member", "guest")


class WishlistCache:
    """
    Cache of wishlist detail payloads keyed by slug and audience.

    Redis is the primary store. When it is unreachable the cache backs off
    for an exponentially growing cooldown and, outside tests, serves from a
    small in-process dict instead.
    """

    def __init__(
        self,
        redis_dsn: str | None = None,
        ttl_public: int | None = None,
        ttl_private: int | None = None,
        enabled: bool | None = None,
        memory_fallback: bool | None = None,
    ) -> None:
        if memory_fallback is None:
            is_testing = (os.getenv("TESTING") or "").strip().lower() in {"1", "true", "yes"}
            memory_fallback = redis_dsn is None and not is_testing
        self._allow_memory_fallback = memory_fallback
        self._redis_dsn = settings.redis_dsn if redis_dsn is None else redis_dsn
        self._ttl_public = ttl_public or settings.wishlist_cache_ttl_public
        self._ttl_private = ttl_private or settings.wishlist_cache_ttl_private
        self._enabled = enabled if enabled is not None else settings.wishlist_cache_enabled
        self._redis: redis.Redis | None = None
        self._connect_lock = asyncio.Lock()
        self._cooldown_until = 0.0
        self._connect_failures = 0
        self._memory: dict[str, tuple[float, str]] = {}
        self._memory_max = 500
        self._hits = 0
        self._misses = 0
        self._errors = 0
        self._sets = 0

    def _key(self, slug: str, audience: str) -> str:
        return f"wishlist:detail:{slug}:{audience}"

    def _ttl_for(self, visibility: str | None) -> int:
        if visibility == "public":
            return self._ttl_public
        return self._ttl_private

    def _in_cooldown(self) -> bool:
        return time.monotonic() < self._cooldown_until

    def _mark_redis_failed(self, exc: Exception) -> None:
        self._redis = None
        self._connect_failures += 1
        cooldown = min(60.0, 2.0 ** min(self._connect_failures, 6))
        self._cooldown_until = time.monotonic() + cooldown
        logger.warning(
            "WishlistCache redis unavailable failures=%s cooldown_s=%.0f error=%s",
            self._connect_failures,
            cooldown,
            exc,
        )

    def _mem_get(self, key: str) -> str | None:
        entry = self._memory.get(key)
        if not entry:
            return None
        expires_at, payload = entry
        if expires_at <= time.monotonic():
            self._memory.pop(key, None)
            return None
        return payload

    def _mem_set(self, key: str, payload: str, ttl_s: int) -> None:
        now = time.monotonic()
        self._memory[key] = (now + max(1, int(ttl_s)), payload)
        if len(self._memory) <= self._memory_max:
            return
        for k in [k for k, (exp, _) in self._memory.items() if exp <= now]:
            self._memory.pop(k, None)
        overflow = len(self._memory) - self._memory_max
        for k in list(self._memory)[: max(0, overflow)]:
            self._memory.pop(k, None)

    async def _get_redis(self) -> redis.Redis | None:
        if not self._enabled or not (self._redis_dsn or "").strip():
            return None
        if self._redis is not None:
            return self._redis
        if self._in_cooldown():
            return None
        async with self._connect_lock:
            if self._redis is not None or self._in_cooldown():
                return self._redis
            try:
                client = redis.from_url(
                    self._redis_dsn,
                    encoding="utf-8",
                    decode_responses=True,
                    socket_connect_timeout=2,
                    socket_timeout=2,
                    health_check_interval=30,
                )
                await client.ping()
                self._redis = client
                self._connect_failures = 0
                self._cooldown_until = 0.0
                logger.info("WishlistCache connected redis=%s", self._redis_dsn)
            except (redis.RedisError, OSError) as exc:
                self._mark_redis_failed(exc)
        return self._redis

    async def get_detail(self, slug: str, audience: str) -> dict[str, Any] | None:
        if not self._enabled:
            return None
        key = self._key(slug, audience)
        try:
            client = await self._get_redis()
            if client is None:
                cached = self._mem_get(key) if self._allow_memory_fallback else None
            else:
                cached = await client.get(key)
        except redis.RedisError as exc:
            self._errors += 1
            self._mark_redis_failed(exc)
            return None
        if not cached:
            self._misses += 1
            return None
        try:
            payload = json.loads(cached)
        except ValueError:
            self._errors += 1
            logger.debug("WishlistCache undecodable entry key=%s", key)
            return None
        self._hits += 1
        return payload

    async def set_detail(
        self,
        slug: str,
        audience: str,
        payload: dict[str, Any],
        visibility: str | None = None,
    ) -> bool:
        if not self._enabled:
            return False
        key = self._key(slug, audience)
        value = json.dumps(payload, ensure_ascii=False, default=str)
        ttl = self._ttl_for(visibility)
        try:
            client = await self._get_redis()
            if client is None:
                if not self._allow_memory_fallback:
                    return False
                self._mem_set(key, value, ttl)
            else:
                await client.setex(key, ttl, value)
        except redis.RedisError as exc:
            self._errors += 1
            self._mark_redis_failed(exc)
            return False
        self._sets += 1
        return True

    async def invalidate_wishlist(self, slug: str) -> int:
        keys = [self._key(slug, audience) for audience in CACHE_AUDIENCES]
        deleted = sum(1 for key in keys if self._memory.pop(key, None) is not None)
        try:
            client = await self._get_redis()
            if client is not None:
                deleted += int(await client.delete(*keys))
        except redis.RedisError as exc:
            self._errors += 1
            self._mark_redis_failed(exc)
        return deleted

    async def ping(self) -> bool:
        client = await self._get_redis()
        if client is None:
            return False
        try:
            await client.ping()
            return True
        except redis.RedisError as exc:
            self._mark_redis_failed(exc)
            return False

    async def get_stats(self) -> dict[str, Any]:
        total = self._hits + self._misses
        return {
            "hits": self._hits,
            "misses": self._misses,
            "errors": self._errors,
            "sets": self._sets,
            "hit_rate": round(self._hits / total * 100, 2) if total else 0,
            "redis_connected": self._redis is not None,
            "memory_fallback": self._allow_memory_fallback,
            "memory_entries": len(self._memory),
            "cooldown_s": round(max(0.0, self._cooldown_until - time.monotonic()), 1),
            "connect_failures": self._connect_failures,
            "ttl_public": self._ttl_public,
            "ttl_private": self._ttl_private,
        }


def build_wishlist_cache():
    if not settings.wishlist_cache_enabled:
        from wishlists_app.core.cache_null import NullWishlistCache

        return NullWishlistCache()
    return WishlistCache()


wishlist_cache = build_wishlist_cache()
