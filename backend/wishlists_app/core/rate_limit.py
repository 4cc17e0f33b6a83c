"""Sliding-window rate limiting kept in process memory."""

import logging
import time
from dataclasses import dataclass, field

from fastapi import HTTPException, Request, status

from wishlists_app.core.audit import audit_rate_limit_exceeded
from wishlists_app.core.config import settings


logger = logging.getLogger("wishlists.rate_limit")

MAX_KEYS = 10000
SWEEP_EVERY = 100


@dataclass
class _Window:
    hits: list[float] = field(default_factory=list)
    touched_at: float = field(default_factory=time.monotonic)


class SlidingWindowLimiter:
    def __init__(self, max_keys: int = MAX_KEYS):
        self._windows: dict[str, _Window] = {}
        self._max_keys = max_keys
        self._calls = 0

    def hit(self, key: str, max_requests: int, window_seconds: int) -> tuple[bool, int]:
        """
        Record one request for ``key``.

        Returns ``(allowed, retry_after_seconds)``. A refused request is not
        recorded, so a client that keeps retrying is let through as soon as
        its oldest hit leaves the window.
        """
        now = time.monotonic()
        window = self._windows.setdefault(key, _Window())
        window.touched_at = now
        cutoff = now - window_seconds
        window.hits = [ts for ts in window.hits if ts > cutoff]

        if len(window.hits) >= max_requests:
            retry_after = int(window.hits[0] + window_seconds - now) + 1
            return False, max(1, retry_after)

        window.hits.append(now)
        self._calls += 1
        if self._calls % SWEEP_EVERY == 0:
            self._sweep(now, window_seconds * 2)
        return True, 0

    def _sweep(self, now: float, max_idle: float) -> None:
        idle = [k for k, w in self._windows.items() if now - w.touched_at > max_idle]
        for k in idle:
            del self._windows[k]
        if len(self._windows) > self._max_keys:
            by_age = sorted(self._windows.items(), key=lambda kv: kv[1].touched_at)
            overflow = len(self._windows) - self._max_keys
            for k, _ in by_age[:overflow]:
                del self._windows[k]
            logger.warning("Rate limit table over %d keys, dropped %d", self._max_keys, overflow)

    def reset(self, key: str | None = None) -> None:
        if key is None:
            self._windows.clear()
        else:
            self._windows.pop(key, None)

    def stats(self) -> dict:
        return {"keys": len(self._windows), "calls": self._calls, "max_keys": self._max_keys}


limiter = SlidingWindowLimiter()


def get_client_identifier(request: Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return f"ip:{forwarded.split(',')[0].strip()}"
    if request.client:
        return f"ip:{request.client.host}"
    return f"ua:{request.headers.get('User-Agent', '')[:64]}"


def check_rate_limit(
    request: Request,
    max_requests: int | None = None,
    window_seconds: int | None = None,
    key_suffix: str = "",
) -> None:
    """Raise 429 when the caller exceeded the limit for this path."""
    if not settings.rate_limit_enabled:
        return

    client_id = get_client_identifier(request)
    path = request.url.path
    allowed, retry_after = limiter.hit(
        f"{client_id}:{path}:{key_suffix}",
        max_requests or settings.rate_limit_requests,
        window_seconds or settings.rate_limit_window_seconds,
    )
    if allowed:
        return

    logger.warning("Rate limit exceeded for %s on %s, retry_after=%ds", client_id, path, retry_after)
    audit_rate_limit_exceeded(request, path, retry_after)
    raise HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail=f"Rate limit exceeded. Try again in {retry_after} seconds.",
        headers={"Retry-After": str(retry_after)},
    )
