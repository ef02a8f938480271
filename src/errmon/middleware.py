"""ASGI middleware feeding request navigation and failures to a monitor."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from errmon.monitor import ErrorMonitor


class ErrorMonitorMiddleware:
    """Records each HTTP request as a navigation and captures escaping exceptions.

    Responses with a 5xx status leave an error-level breadcrumb. Exceptions
    are re-raised after capture so the server's own handling is unchanged.
    """

    def __init__(self, app: Any, monitor: ErrorMonitor) -> None:
        self.app = app
        self.monitor = monitor

    async def __call__(self, scope: Any, receive: Any, send: Any) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        method = scope.get("method", "")
        path = scope.get("path", "")
        headers = dict(scope.get("headers", []))
        referrer = headers.get(b"referer", b"").decode("utf-8", errors="ignore")
        status_code = 500

        self.monitor.navigate(path, referrer=referrer)
        start = time.monotonic()

        async def send_wrapper(message: Any) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message.get("status", 500)
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        except Exception as exc:
            self.monitor.capture_error(exc, {
                "type": "request",
                "route": path,
                "method": method,
            })
            raise
        finally:
            duration_ms = round((time.monotonic() - start) * 1000, 2)
            self.monitor.add_breadcrumb(
                f"{method} {path} -> {status_code}",
                category="http",
                level="error" if status_code >= 500 else "info",
                data={"method": method, "path": path, "status": status_code, "duration": duration_ms},
            )
