import logging

import pytest
from fastapi import HTTPException
from starlette.requests import Request

from wishlists_app.core import rate_limit
from wishlists_app.core.audit import REDACTED, AuditAction, audit_log, redact
from wishlists_app.core.rate_limit import SlidingWindowLimiter, check_rate_limit, get_client_identifier


def _request(path: str = "/auth/login", client=("10.0.0.1", 5000), headers: dict | None = None) -> Request:
    raw_headers = [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()]
    return Request(
        {
            "type": "http",
            "method": "POST",
            "scheme": "http",
            "server": ("testserver", 80),
            "path": path,
            "query_string": b"",
            "headers": raw_headers,
            "client": client,
        }
    )


class TestSlidingWindowLimiter:
    def test_allows_up_to_max_then_refuses(self):
        limiter = SlidingWindowLimiter()

        results = [limiter.hit("k", 3, 60) for _ in range(4)]

        assert [allowed for allowed, _ in results] == [True, True, True, False]
        assert 1 <= results[-1][1] <= 61

    def test_refused_hits_are_not_recorded(self):
        limiter = SlidingWindowLimiter()
        limiter.hit("k", 1, 60)
        limiter.hit("k", 1, 60)
        limiter.hit("k", 1, 60)

        assert limiter.stats()["calls"] == 1

    def test_keys_are_independent(self):
        limiter = SlidingWindowLimiter()
        assert limiter.hit("a", 1, 60)[0] is True
        assert limiter.hit("b", 1, 60)[0] is True
        assert limiter.hit("a", 1, 60)[0] is False

    def test_window_expiry(self, monkeypatch):
        clock = [1000.0]
        monkeypatch.setattr(rate_limit.time, "monotonic", lambda: clock[0])
        limiter = SlidingWindowLimiter()

        assert limiter.hit("k", 1, 10) == (True, 0)
        clock[0] += 5
        assert limiter.hit("k", 1, 10) == (False, 6)
        clock[0] += 6
        assert limiter.hit("k", 1, 10) == (True, 0)

    def test_reset(self):
        limiter = SlidingWindowLimiter()
        limiter.hit("a", 1, 60)
        limiter.hit("b", 1, 60)

        limiter.reset("a")
        assert limiter.hit("a", 1, 60)[0] is True
        limiter.reset()
        assert limiter.stats()["keys"] == 0

    def test_sweep_caps_table_size(self, monkeypatch):
        monkeypatch.setattr(rate_limit, "SWEEP_EVERY", 10)
        limiter = SlidingWindowLimiter(max_keys=5)

        for i in range(10):
            limiter.hit(f"k{i}", 5, 60)

        assert limiter.stats() == {"keys": 5, "calls": 10, "max_keys": 5}


class TestClientIdentifier:
    def test_forwarded_for_wins(self):
        request = _request(headers={"X-Forwarded-For": "203.0.113.9, 10.0.0.1"})
        assert get_client_identifier(request) == "ip:203.0.113.9"

    def test_client_host(self):
        assert get_client_identifier(_request()) == "ip:10.0.0.1"

    def test_user_agent_fallback(self):
        request = _request(client=None, headers={"User-Agent": "pytest"})
        assert get_client_identifier(request) == "ua:pytest"


class TestCheckRateLimit:
    @pytest.fixture
    def enabled(self, monkeypatch):
        monkeypatch.setattr(rate_limit.settings, "rate_limit_enabled", True)
        monkeypatch.setattr(rate_limit, "limiter", SlidingWindowLimiter())

    def test_raises_429_with_retry_after(self, enabled):
        request = _request()
        check_rate_limit(request, max_requests=2, window_seconds=60, key_suffix="login")
        check_rate_limit(request, max_requests=2, window_seconds=60, key_suffix="login")

        with pytest.raises(HTTPException) as exc_info:
            check_rate_limit(request, max_requests=2, window_seconds=60, key_suffix="login")

        assert exc_info.value.status_code == 429
        assert int(exc_info.value.headers["Retry-After"]) >= 1

    def test_limits_are_per_path_and_suffix(self, enabled):
        check_rate_limit(_request("/auth/login"), max_requests=1, window_seconds=60)
        check_rate_limit(_request("/auth/register"), max_requests=1, window_seconds=60)
        check_rate_limit(_request("/auth/login"), max_requests=1, window_seconds=60, key_suffix="other")

    def test_disabled_never_raises(self, monkeypatch):
        monkeypatch.setattr(rate_limit.settings, "rate_limit_enabled", False)
        for _ in range(20):
            check_rate_limit(_request(), max_requests=1, window_seconds=60)

    def test_login_endpoint_is_limited(self, enabled, test_client):
        payload = {"email": "nobody@example.com", "password": "WrongPass123"}
        codes = [test_client.post("/auth/login", json=payload).status_code for _ in range(6)]

        assert codes[-1] == 429
        assert 429 not in codes[:5]


class TestAudit:
    def test_redact(self):
        assert redact({"email": "a@b.c", "Password": "x", "token": "t"}) == {
            "email": "a@b.c",
            "Password": REDACTED,
            "token": REDACTED,
        }

    def test_event_fields(self, caplog):
        request = _request(headers={"User-Agent": "pytest", "X-Request-Id": "req-1"})

        with caplog.at_level(logging.INFO, logger="wishlists.audit"):
            event = audit_log(AuditAction.LOGIN, request=request, user_id=5, details={"password": "secret"})

        assert event["action"] == "login"
        assert event["user_id"] == "5"
        assert event["ip"] == "10.0.0.1"
        assert event["user_agent"] == "pytest"
        assert event["request_id"] == "req-1"
        assert event["details"] == {"password": REDACTED}
        assert "secret" not in caplog.text

    def test_failures_log_at_warning(self, caplog):
        with caplog.at_level(logging.INFO, logger="wishlists.audit"):
            event = audit_log(AuditAction.LOGIN_FAILED, success=False)

        assert event["success"] is False
        assert "user_id" not in event
        assert caplog.records[-1].levelno == logging.WARNING
