"""Decorators that report failures and slow calls of a function."""

from __future__ import annotations

import functools
import inspect
from typing import TYPE_CHECKING, Any

from errmon.types import Severity

if TYPE_CHECKING:
    from errmon.monitor import ErrorMonitor


def _resolve(monitor: ErrorMonitor | None) -> ErrorMonitor | None:
    if monitor is not None:
        return monitor
    import errmon

    return errmon.get_monitor()


def boundary(
    component: str | None = None,
    *,
    monitor: ErrorMonitor | None = None,
    severity: Severity = "high",
) -> Any:
    """Capture exceptions escaping the wrapped function, then re-raise them.

    The report context names the component (default: the function's
    qualified name). Works with both sync and async functions.
    """
    def decorator(func: Any) -> Any:
        name = component or func.__qualname__
        context = {"component": name, "type": "boundary", "function": func.__qualname__}

        if inspect.iscoroutinefunction(func):
            @functools.wraps(func)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                try:
                    return await func(*args, **kwargs)
                except Exception as exc:
                    target = _resolve(monitor)
                    if target is not None:
                        target.capture_error(exc, context, severity=severity)
                    raise

            return async_wrapper

        @functools.wraps(func)
        def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
            try:
                return func(*args, **kwargs)
            except Exception as exc:
                target = _resolve(monitor)
                if target is not None:
                    target.capture_error(exc, context, severity=severity)
                raise

        return sync_wrapper

    return decorator


def measure(name: str | None = None, *, monitor: ErrorMonitor | None = None) -> Any:
    """Leave a long-task breadcrumb when the wrapped function runs long."""
    def decorator(func: Any) -> Any:
        task_name = name or func.__qualname__

        if inspect.iscoroutinefunction(func):
            @functools.wraps(func)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                target = _resolve(monitor)
                if target is None:
                    return await func(*args, **kwargs)
                with target.measure(task_name):
                    return await func(*args, **kwargs)

            return async_wrapper

        @functools.wraps(func)
        def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
            target = _resolve(monitor)
            if target is None:
                return func(*args, **kwargs)
            with target.measure(task_name):
                return func(*args, **kwargs)

        return sync_wrapper

    return decorator
