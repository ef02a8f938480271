"""Tests for the errmon CLI."""

from __future__ import annotations

import httpx
from typer.testing import CliRunner

from errmon.cli import app

runner = CliRunner()

ENDPOINT = "http://collector.test/api/monitoring/errors"


def _response(status: int, payload: dict, url: str) -> httpx.Response:
    return httpx.Response(status, json=payload, request=httpx.Request("GET", url))


class TestPing:
    def test_healthy(self, monkeypatch):
        def fake_get(url, **kwargs):
            return _response(200, {"status": "healthy", "version": "1.2.0", "timestamp": "t"}, url)

        monkeypatch.setattr(httpx, "get", fake_get)
        result = runner.invoke(app, ["ping", "--endpoint", ENDPOINT])

        assert result.exit_code == 0
        assert "healthy" in result.output
        assert "1.2.0" in result.output

    def test_unreachable(self, monkeypatch):
        def fake_get(url, **kwargs):
            raise httpx.ConnectError("refused")

        monkeypatch.setattr(httpx, "get", fake_get)
        result = runner.invoke(app, ["ping", "--endpoint", ENDPOINT])

        assert result.exit_code == 1
        assert "Cannot reach" in result.output

    def test_error_status(self, monkeypatch):
        monkeypatch.setattr(httpx, "get", lambda url, **kw: _response(503, {}, url))
        result = runner.invoke(app, ["ping", "--endpoint", ENDPOINT])
        assert result.exit_code == 1


class TestStats:
    def test_prints_patterns(self, monkeypatch):
        seen = []

        def fake_get(url, **kwargs):
            seen.append(url)
            return _response(200, {
                "total": 4,
                "analytics": 9,
                "patterns": [
                    {"pattern": "ValueError:/cart", "count": 3, "frequency": 0.75, "severity": "critical"},
                ],
            }, url)

        monkeypatch.setattr(httpx, "get", fake_get)
        result = runner.invoke(app, ["stats", "--endpoint", ENDPOINT])

        assert result.exit_code == 0
        assert seen == [f"{ENDPOINT}/stats"]
        assert "ValueError:/cart" in result.output
        assert "75%" in result.output

    def test_http_error(self, monkeypatch):
        monkeypatch.setattr(httpx, "get", lambda url, **kw: _response(500, {}, url))
        result = runner.invoke(app, ["stats", "--endpoint", ENDPOINT])

        assert result.exit_code == 1
        assert "Failed to fetch stats" in result.output
