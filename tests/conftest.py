"""Shared fixtures for errmon tests."""

from __future__ import annotations

from typing import Any

import pytest

from errmon.config import MonitorConfig
from errmon.errors import TransportError
from errmon.fingerprint import RuntimeEnvironment
from errmon.monitor import ErrorMonitor

RUNTIME = RuntimeEnvironment(
    user_agent="errmon-python/test",
    locale="en_US",
    timezone="UTC",
    screen="80x24",
    platform="Linux-test",
)


class FakeTransport:
    """Records payloads; fails while ``fail`` is set."""

    supports_beacon = True

    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []
        self.beacons: list[dict[str, Any]] = []
        self.fail = False
        self.beacon_ok = True

    def send(self, payload: dict[str, Any]) -> None:
        if self.fail:
            raise TransportError("collector down", status_code=503)
        self.sent.append(payload)

    def send_beacon(self, payload: dict[str, Any]) -> bool:
        if self.beacon_ok:
            self.beacons.append(payload)
        return self.beacon_ok


@pytest.fixture()
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture()
def make_monitor(transport):
    created: list[ErrorMonitor] = []

    def _make(**options: Any) -> ErrorMonitor:
        options.setdefault("flush_interval", 3600)
        memory = options.pop("memory_probe", lambda: {
            "usedHeapSize": 100, "totalHeapSize": 200, "heapSizeLimit": 1000,
        })
        monitor = ErrorMonitor(
            MonitorConfig(**options),
            transport=transport,
            runtime=RUNTIME,
            memory_probe=memory,
        )
        created.append(monitor)
        return monitor

    yield _make

    for monitor in created:
        monitor.shutdown()


@pytest.fixture()
def monitor(make_monitor) -> ErrorMonitor:
    return make_monitor()


@pytest.fixture()
def runtime() -> RuntimeEnvironment:
    return RUNTIME
