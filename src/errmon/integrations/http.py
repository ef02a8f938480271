"""HTTP auto-instrumentation for httpx."""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Any

import httpx

if TYPE_CHECKING:
    from errmon.monitor import ErrorMonitor

logger = logging.getLogger("errmon.integrations")

_original_sync_send: Any = None
_original_async_send: Any = None
_monitor: ErrorMonitor | None = None


def _record(
    request: Any,
    initiator: str,
    started: float,
    start_time: float,
    response: Any = None,
    error: BaseException | None = None,
) -> None:
    monitor = _monitor
    if monitor is None:
        return
    if request.url == httpx.URL(monitor.config.endpoint):
        return
    url = str(request.url)

    duration = round((time.monotonic() - started) * 1000, 2)
    method = str(request.method)
    status = response.status_code if response is not None else None

    if error is not None:
        monitor.breadcrumbs.record(
            f"HTTP error {url}",
            category="http",
            level="error",
            data={"url": url, "method": method, "error": str(error), "duration": duration},
        )
    else:
        monitor.breadcrumbs.record(
            f"HTTP {status} {url}",
            category="http",
            level="info" if response.is_success else "error",
            data={
                "url": url,
                "method": method,
                "status": status,
                "statusText": response.reason_phrase,
                "duration": duration,
            },
        )
    monitor.performance.resources.add(url, initiator, start_time, duration, status)


def patch_httpx(monitor: ErrorMonitor) -> None:
    """Wrap httpx sends so every request leaves an ``http`` breadcrumb."""
    global _original_sync_send, _original_async_send, _monitor

    _monitor = monitor
    if _original_sync_send is not None:
        return  # Already patched

    _original_sync_send = httpx.Client.send
    _original_async_send = httpx.AsyncClient.send

    def _patched_sync_send(self: Any, request: Any, **kwargs: Any) -> Any:
        started = time.monotonic()
        start_time = _monitor.performance.now() if _monitor else 0.0
        try:
            response = _original_sync_send(self, request, **kwargs)
        except Exception as exc:
            _safe_record(request, "httpx.Client", started, start_time, error=exc)
            raise
        _safe_record(request, "httpx.Client", started, start_time, response=response)
        return response

    async def _patched_async_send(self: Any, request: Any, **kwargs: Any) -> Any:
        started = time.monotonic()
        start_time = _monitor.performance.now() if _monitor else 0.0
        try:
            response = await _original_async_send(self, request, **kwargs)
        except Exception as exc:
            _safe_record(request, "httpx.AsyncClient", started, start_time, error=exc)
            raise
        _safe_record(request, "httpx.AsyncClient", started, start_time, response=response)
        return response

    httpx.Client.send = _patched_sync_send  # type: ignore[assignment]
    httpx.AsyncClient.send = _patched_async_send  # type: ignore[assignment]


def _safe_record(*args: Any, **kwargs: Any) -> None:
    try:
        _record(*args, **kwargs)
    except Exception:
        logger.debug("Failed to record HTTP breadcrumb", exc_info=True)


def unpatch_httpx() -> None:
    """Restore original httpx methods."""
    global _original_sync_send, _original_async_send, _monitor

    if _original_sync_send is None:
        return

    httpx.Client.send = _original_sync_send  # type: ignore[assignment]
    httpx.AsyncClient.send = _original_async_send  # type: ignore[assignment]
    _original_sync_send = None
    _original_async_send = None
    _monitor = None
