"""Long-task observation, memory polling and performance snapshots."""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Any

import psutil

try:
    import resource
except ImportError:  # Windows
    resource = None  # type: ignore[assignment]

from errmon.breadcrumbs import BreadcrumbRecorder
from errmon.types import PerformanceSnapshot

logger = logging.getLogger("errmon.performance")

_MAX_RESOURCE_ENTRIES = 150


def memory_info() -> dict[str, Any] | None:
    """Process memory in the shape of a JS heap report, or None if unavailable."""
    try:
        mem = psutil.Process().memory_info()
    except psutil.Error:
        return None
    return {
        "usedHeapSize": mem.rss,
        "totalHeapSize": mem.vms,
        "heapSizeLimit": _memory_limit(),
    }


def _memory_limit() -> int:
    if resource is not None:
        soft, _ = resource.getrlimit(resource.RLIMIT_AS)
        if soft != resource.RLIM_INFINITY:
            return soft
    return psutil.virtual_memory().total


class ResourceTimeline:
    """Recent outbound request timings, newest last."""

    def __init__(self, maxlen: int = _MAX_RESOURCE_ENTRIES) -> None:
        self._entries: deque[dict[str, Any]] = deque(maxlen=maxlen)
        self._lock = threading.Lock()

    def add(
        self,
        name: str,
        initiator_type: str,
        start_time: float,
        duration: float,
        status: int | None = None,
    ) -> None:
        entry = {
            "name": name,
            "initiatorType": initiator_type,
            "startTime": round(start_time, 2),
            "duration": round(duration, 2),
        }
        if status is not None:
            entry["responseStatus"] = status
        with self._lock:
            self._entries.append(entry)

    def last(self, n: int) -> list[dict[str, Any]]:
        with self._lock:
            entries = list(self._entries)
        return [dict(e) for e in entries[-n:]] if n > 0 else []


class PerformanceMonitor:
    """Reports slow work and high memory usage as breadcrumbs."""

    def __init__(
        self,
        recorder: BreadcrumbRecorder,
        long_task_threshold_ms: float = 50.0,
        memory_check_interval: float = 30.0,
        memory_usage_threshold: float = 0.9,
        memory_probe: Callable[[], dict[str, Any] | None] = memory_info,
    ) -> None:
        self._recorder = recorder
        self.long_task_threshold_ms = long_task_threshold_ms
        self.memory_check_interval = memory_check_interval
        self.memory_usage_threshold = memory_usage_threshold
        self._memory_probe = memory_probe
        self.resources = ResourceTimeline()
        self._origin = time.perf_counter()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def now(self) -> float:
        """Milliseconds since this monitor was created."""
        return (time.perf_counter() - self._origin) * 1000

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_running:
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._poll_loop, name="errmon-memory", daemon=True
        )
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._thread:
            self._thread.join(timeout=5)
            self._thread = None

    def _poll_loop(self) -> None:
        while not self._stop.wait(self.memory_check_interval):
            try:
                self.check_memory()
            except Exception:
                logger.debug("Memory check failed", exc_info=True)

    def observe(self, name: str, start_time: float, duration: float) -> bool:
        """Record a long-task breadcrumb if ``duration`` (ms) is over the threshold."""
        if duration <= self.long_task_threshold_ms:
            return False
        self._recorder.record(
            f"Long task detected: {duration:.1f}ms",
            category="ui",
            level="warning",
            data={"duration": round(duration, 2), "startTime": round(start_time, 2), "name": name},
        )
        return True

    @contextmanager
    def measure(self, name: str) -> Iterator[None]:
        """Time the enclosed block and report it when it runs long."""
        start = self.now()
        try:
            yield
        finally:
            self.observe(name, start, self.now() - start)

    def check_memory(self) -> bool:
        memory = self._memory_probe()
        if not memory or not memory.get("heapSizeLimit"):
            return False
        used = memory["usedHeapSize"]
        limit = memory["heapSizeLimit"]
        if used <= limit * self.memory_usage_threshold:
            return False
        self._recorder.record(
            "High memory usage detected",
            category="ui",
            level="warning",
            data={**memory, "usage": used / limit * 100},
        )
        return True

    def snapshot(self, resource_count: int = 10) -> PerformanceSnapshot:
        """Best-effort memory, timing and recent resource data."""
        memory = timing = resources = None
        try:
            memory = self._memory_probe()
        except Exception:
            logger.debug("Memory snapshot unavailable", exc_info=True)
        try:
            created = psutil.Process().create_time()
            timing = {
                "processStart": datetime.fromtimestamp(created, UTC).isoformat(),
                "uptimeMs": round((time.time() - created) * 1000, 2),
                "now": round(self.now(), 2),
            }
        except psutil.Error:
            logger.debug("Timing snapshot unavailable", exc_info=True)
        resources = self.resources.last(resource_count) or None
        return PerformanceSnapshot(memory=memory, timing=timing, resources=resources)
