"""Tests for the breadcrumb trail."""

from __future__ import annotations

from errmon.breadcrumbs import BreadcrumbRecorder
from errmon.types import Breadcrumb


class TestBreadcrumbRecorder:
    def test_keeps_most_recent_in_order(self):
        recorder = BreadcrumbRecorder(max_breadcrumbs=10)
        for i in range(25):
            recorder.record(f"crumb {i}")
            assert len(recorder) <= 10

        messages = [c.message for c in recorder.snapshot()]
        assert messages == [f"crumb {i}" for i in range(15, 25)]

    def test_snapshot_is_a_copy(self):
        recorder = BreadcrumbRecorder()
        recorder.record("first", data={"key": "value"})

        crumbs = recorder.snapshot()
        crumbs.append(Breadcrumb(message="injected"))
        crumbs[0].data["key"] = "changed"

        again = recorder.snapshot()
        assert [c.message for c in again] == ["first"]
        assert again[0].data == {"key": "value"}

    def test_clear(self):
        recorder = BreadcrumbRecorder()
        recorder.record("a")
        recorder.record("b")
        recorder.clear()
        assert recorder.snapshot() == []

    def test_resize_keeps_newest(self):
        recorder = BreadcrumbRecorder(max_breadcrumbs=5)
        for i in range(5):
            recorder.record(str(i))
        recorder.resize(2)
        assert [c.message for c in recorder.snapshot()] == ["3", "4"]
        assert recorder.max_breadcrumbs == 2

    def test_defaults(self):
        crumb = BreadcrumbRecorder().record("hello")
        assert crumb.category == "debug"
        assert crumb.level == "info"
        assert crumb.timestamp.tzinfo is not None


class TestMonitorTrail:
    def test_scenario_three_of_five(self, make_monitor):
        monitor = make_monitor()
        monitor.initialize(max_breadcrumbs=3)

        for i in range(1, 6):
            monitor.add_breadcrumb(f"B{i}")

        assert [c.message for c in monitor.get_breadcrumbs()] == ["B3", "B4", "B5"]

    def test_capture_message_is_breadcrumb_only(self, monitor):
        crumb = monitor.capture_message("cache warmed", level="warning", extra={"keys": 3})

        assert crumb.level == "warning"
        assert crumb.data == {"keys": 3}
        assert monitor.get_breadcrumbs()[-1].message == "cache warmed"
        assert monitor.transport.pending_errors == []

    def test_clear_breadcrumbs(self, monitor):
        monitor.add_breadcrumb("x")
        monitor.clear_breadcrumbs()
        assert monitor.get_breadcrumbs() == []
