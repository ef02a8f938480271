"""Tests for the collector service."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from errmon.collector.app import create_app
from errmon.collector.processing import (
    calculate_severity,
    categorize_error,
    detect_patterns,
    error_fingerprint,
    normalize_url,
    parse_stack_trace,
    parse_user_agent,
)
from errmon.collector.ratelimit import RateLimiter
from errmon.config import CollectorSettings
from errmon.types import ErrorInfo, ErrorMetadata, ErrorReport, ReportContext

URL = "/api/monitoring/errors"

STACK = """Traceback (most recent call last):
  File "/srv/app/checkout.py", line 42, in submit
    charge(card)
  File "/usr/lib/python3.12/site-packages/stripe/api.py", line 10, in charge
    raise CardError()
stripe.CardError
"""


def _report(
    name: str = "ValueError",
    message: str = "bad value",
    url: str = "app://local/cart",
    route: str | None = None,
    severity: str = "high",
    user_id: str | None = None,
    session_id: str = "s1",
    report_id: str = "r1",
) -> ErrorReport:
    return ErrorReport(
        id=report_id,
        error=ErrorInfo(name=name, message=message, stack=STACK),
        metadata=ErrorMetadata(
            user_agent="errmon-python/0.1.0",
            url=url,
            user_id=user_id,
            session_id=session_id,
            severity=severity,
            fingerprint="0123456789abcdef",
        ),
        context=ReportContext(route=route),
    )


def _event(event_id: str = "e1", session_id: str = "s1", timestamp: str = "2024-05-01T10:00:00Z"):
    return {
        "id": event_id,
        "name": "page_view",
        "timestamp": timestamp,
        "properties": {"userAgent": "Mozilla/5.0 (iPhone)"},
        "sessionId": session_id,
        "category": "user",
    }


@pytest.fixture()
def client():
    app = create_app(CollectorSettings(rate_limit=3, rate_window=60))
    return TestClient(app)


class TestIngest:
    def test_accepts_batch(self, client):
        body = {"errors": [_report().to_wire()], "analytics": [_event()]}
        resp = client.post(URL, json=body)

        assert resp.status_code == 200
        assert resp.json() == {"success": True, "processed": {"errors": 1, "analytics": 1}}

        store = client.app.state.store
        processed = store.errors[0]["processed"]
        assert processed["category"] == "unknown"
        assert processed["impactedUsers"] == 1
        assert processed["similarErrors"] == ["r1"]
        assert processed["stackTrace"] == [
            {"function": "submit", "file": "/srv/app/checkout.py", "line": 42},
        ]
        assert store.events[0]["processed"]["deviceInfo"]["isMobile"] is True
        assert store.events[0]["processed"]["sessionDuration"] == 0

    def test_rejects_invalid_body(self, client):
        resp = client.post(URL, json={"errors": [{"id": "x"}], "analytics": []})
        assert resp.status_code == 400
        assert resp.json()["error"] == "Invalid request data"
        assert resp.json()["details"]

    def test_rejects_missing_analytics(self, client):
        resp = client.post(URL, json={"errors": []})
        assert resp.status_code == 400

    def test_rejects_non_json(self, client):
        resp = client.post(URL, content=b"not json", headers={"content-type": "application/json"})
        assert resp.status_code == 400

    def test_rejects_oversized_batch(self, client):
        body = {"errors": [], "analytics": [_event(f"e{i}") for i in range(1001)]}
        resp = client.post(URL, json=body)
        assert resp.status_code == 400
        assert "too large" in resp.json()["error"]

    def test_rate_limit(self, client):
        body = {"errors": [], "analytics": []}
        codes = [
            client.post(URL, json=body, headers={"x-forwarded-for": "10.0.0.1, 10.0.0.2"}).status_code
            for _ in range(4)
        ]
        assert codes == [200, 200, 200, 429]

        other = client.post(URL, json=body, headers={"x-real-ip": "10.0.0.9"})
        assert other.status_code == 200

    def test_health(self, client, monkeypatch):
        monkeypatch.setenv("APP_VERSION", "3.1.0")
        data = client.get(URL).json()
        assert data["status"] == "healthy"
        assert data["version"] == "3.1.0"
        assert data["timestamp"]

    def test_stats(self, client):
        errors = [
            _report(report_id=f"r{i}", url=f"app://local/cart?step={i}", user_id=f"u{i % 2}").to_wire()
            for i in range(3)
        ]
        client.post(URL, json={"errors": errors, "analytics": []})

        stats = client.get(f"{URL}/stats").json()
        assert stats["total"] == 3
        assert stats["byName"] == {"ValueError": 3}
        assert stats["bySeverity"] == {"high": 3}
        assert stats["recentErrors"] == ["r0", "r1", "r2"]

        store = client.app.state.store
        assert store.errors[-1]["processed"]["impactedUsers"] == 2


class TestProcessing:
    def test_fingerprint_ignores_numbers_and_query(self):
        a = _report(message="order 1234 missing", url="app://local/cart?x=1")
        b = _report(message="order 98 missing", url="app://local/cart?x=2")
        c = _report(message="order 98 missing", url="app://local/checkout")

        assert error_fingerprint(a) == error_fingerprint(b)
        assert error_fingerprint(a) != error_fingerprint(c)
        assert len(error_fingerprint(a)) == 16

    @pytest.mark.parametrize(
        ("report", "expected"),
        [
            (_report(name="ModuleNotFoundError"), "low"),
            (_report(name="ConnectError"), "medium"),
            (_report(route="/payment/confirm"), "critical"),
            (_report(route="/admin/users"), "high"),
            (_report(severity="low"), "low"),
        ],
    )
    def test_severity(self, report, expected):
        assert calculate_severity(report) == expected

    @pytest.mark.parametrize(
        ("name", "expected"),
        [
            ("ImportError", "module_loading"),
            ("ReadTimeout", "network"),
            ("TypeError", "type_error"),
            ("NameError", "reference_error"),
            ("ValueError", "unknown"),
        ],
    )
    def test_category(self, name, expected):
        assert categorize_error(_report(name=name)) == expected

    def test_stack_trace_skips_libraries(self):
        frames = parse_stack_trace(STACK)
        assert [f["file"] for f in frames] == ["/srv/app/checkout.py"]
        assert parse_stack_trace(None) == []

    def test_user_agent(self):
        assert parse_user_agent("Googlebot/2.1")["isBot"] is True
        assert parse_user_agent("Mozilla/5.0 (X11; Linux)")["platform"] == "desktop"
        assert parse_user_agent(None) == {}

    def test_normalize_url(self):
        assert normalize_url("app://local/cart?step=2") == "/cart?step=2"
        assert normalize_url("not a url") == "not a url"

    def test_patterns(self):
        errors = [
            {"error": {"name": "ValueError"}, "metadata": {"url": "app://local/a", "timestamp": "2"}},
            {"error": {"name": "ValueError"}, "metadata": {"url": "app://local/a", "timestamp": "3"}},
            {"error": {"name": "KeyError"}, "metadata": {"url": "app://local/b", "timestamp": "1"}},
        ]
        patterns = detect_patterns(errors)

        assert patterns[0]["pattern"] == "ValueError:/a"
        assert patterns[0]["count"] == 2
        assert patterns[0]["lastOccurrence"] == "3"
        assert patterns[0]["severity"] == "critical"
        assert detect_patterns([]) == []


class TestRateLimiter:
    def test_window_resets(self):
        now = [0.0]
        limiter = RateLimiter(max_requests=2, window=10, clock=lambda: now[0])

        assert [limiter.is_limited("a") for _ in range(3)] == [False, False, True]
        assert limiter.is_limited("b") is False

        now[0] = 10.0
        assert limiter.is_limited("a") is False

    def test_expired_windows_are_dropped(self):
        now = [0.0]
        limiter = RateLimiter(max_requests=2, window=10, clock=lambda: now[0])
        for key in ("a", "b", "c"):
            limiter.is_limited(key)
        assert len(limiter) == 3

        now[0] = 10.0
        limiter.is_limited("d")
        assert len(limiter) == 1
