"""errmon - error monitoring, breadcrumbs and buffered telemetry delivery."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

__version__ = "0.1.0"

if TYPE_CHECKING:
    from errmon.monitor import ErrorMonitor
    from errmon.types import AnalyticsEvent, Breadcrumb, BreadcrumbCategory, ErrorReport

_monitor: ErrorMonitor | None = None


def init(config_path: str | None = None, **options: Any) -> ErrorMonitor:
    """Create and initialize the process-wide monitor used by the functions below.

    Options come from ``config_path`` (or ``errmon.yaml``), ``ERRMON_*``
    environment variables and keyword arguments, in increasing priority.
    Calling it again returns the existing monitor unchanged.
    """
    global _monitor
    if _monitor is not None:
        return _monitor

    from errmon.config import load_config
    from errmon.monitor import ErrorMonitor

    config = load_config(config_path, **options)
    monitor = ErrorMonitor(config)
    monitor.initialize()
    _monitor = monitor
    return monitor


def get_monitor() -> ErrorMonitor | None:
    return _monitor


def capture_error(error: BaseException, context: dict[str, Any] | None = None) -> ErrorReport | None:
    if _monitor is None:
        return None
    return _monitor.capture_error(error, context)


def capture_exception(exc: Any = None, context: dict[str, Any] | None = None) -> ErrorReport | None:
    """Capture ``exc``, or the exception currently being handled."""
    import sys

    if exc is None:
        exc = sys.exc_info()[1]
    if exc is None or _monitor is None:
        return None
    return _monitor.capture_exception(exc, context)


def capture_message(message: str, level: str = "info") -> Breadcrumb | None:
    if _monitor is None:
        return None
    return _monitor.capture_message(message, level)  # type: ignore[arg-type]


def track_event(
    name: str,
    properties: dict[str, Any] | None = None,
    user_id: str | None = None,
) -> AnalyticsEvent | None:
    if _monitor is None:
        return None
    return _monitor.track_event(name, properties, user_id)


def track_page_view(page: str | None = None) -> AnalyticsEvent | None:
    if _monitor is None:
        return None
    return _monitor.track_page_view(page)


def track_user_action(
    action: str,
    target: str | None = None,
    properties: dict[str, Any] | None = None,
) -> AnalyticsEvent | None:
    if _monitor is None:
        return None
    return _monitor.track_user_action(action, target, properties)


def set_user(user: dict[str, Any] | None = None, **fields: Any) -> None:
    if _monitor is not None:
        _monitor.set_user(user, **fields)


def set_tag(key: str, value: str) -> None:
    if _monitor is not None:
        _monitor.set_tag(key, value)


def set_context(key: str, value: Any) -> None:
    if _monitor is not None:
        _monitor.set_context(key, value)


def add_breadcrumb(
    message: str,
    category: BreadcrumbCategory = "debug",
    data: dict[str, Any] | None = None,
) -> Breadcrumb | None:
    if _monitor is None:
        return None
    return _monitor.add_breadcrumb(message, category=category, data=data)


def flush() -> bool:
    """Flush all queued reports and events synchronously."""
    if _monitor is None:
        return False
    return _monitor.flush()


def shutdown() -> None:
    """Flush and release the process-wide monitor."""
    global _monitor
    if _monitor is not None:
        _monitor.shutdown()
        _monitor = None
