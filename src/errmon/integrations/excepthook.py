"""Automatic capture of uncaught exceptions in the main and worker threads."""

from __future__ import annotations

import logging
import sys
import threading
import traceback
from types import TracebackType
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from errmon.monitor import ErrorMonitor

logger = logging.getLogger("errmon.integrations")


def _location(tb: TracebackType | None) -> dict[str, Any]:
    if tb is None:
        return {}
    frame = traceback.extract_tb(tb)[-1]
    return {
        "filename": frame.filename,
        "lineno": frame.lineno,
        "colno": getattr(frame, "colno", None),
    }


class ExceptHook:
    """Chains onto ``sys.excepthook`` and ``threading.excepthook``.

    Every uncaught exception becomes a ``high`` severity report, then the
    previous hook runs so the default traceback printing is unchanged.
    """

    def __init__(self, monitor: ErrorMonitor) -> None:
        self._monitor = monitor
        self._previous_sys: Any = None
        self._previous_threading: Any = None

    @property
    def installed(self) -> bool:
        return self._previous_sys is not None

    def install(self) -> None:
        if self.installed:
            return
        self._previous_sys = sys.excepthook
        self._previous_threading = threading.excepthook
        sys.excepthook = self._sys_hook
        threading.excepthook = self._thread_hook

    def uninstall(self) -> None:
        if not self.installed:
            return
        if sys.excepthook == self._sys_hook:
            sys.excepthook = self._previous_sys
        if threading.excepthook == self._thread_hook:
            threading.excepthook = self._previous_threading
        self._previous_sys = None
        self._previous_threading = None

    def _capture(self, exc: BaseException, context: dict[str, Any]) -> None:
        if isinstance(exc, KeyboardInterrupt):
            return
        try:
            self._monitor.capture_error(
                exc, {"type": "uncaught_exception", **context}, severity="high"
            )
        except Exception:
            logger.debug("Failed to capture uncaught exception", exc_info=True)

    def _sys_hook(
        self,
        exc_type: type[BaseException],
        exc_value: BaseException,
        exc_tb: TracebackType | None,
    ) -> None:
        self._capture(exc_value, _location(exc_tb))
        previous = self._previous_sys or sys.__excepthook__
        previous(exc_type, exc_value, exc_tb)

    def _thread_hook(self, args: threading.ExceptHookArgs) -> None:
        if args.exc_value is not None:
            thread_name = args.thread.name if args.thread else None
            self._capture(args.exc_value, {**_location(args.exc_traceback), "thread": thread_name})
        previous = self._previous_threading or threading.__excepthook__
        previous(args)
