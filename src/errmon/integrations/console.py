"""Logging capture: log records become breadcrumbs, errors become reports."""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

from errmon.errors import LoggedError
from errmon.types import BreadcrumbLevel

if TYPE_CHECKING:
    from errmon.monitor import ErrorMonitor


def _breadcrumb_level(levelno: int) -> BreadcrumbLevel:
    if levelno >= logging.WARNING:
        return "warning"
    if levelno >= logging.INFO:
        return "info"
    return "debug"


class ConsoleCaptureHandler(logging.Handler):
    """Root logging handler feeding the monitor.

    Other handlers keep printing as before. Records from errmon's own loggers
    are ignored so transport warnings never turn into new reports.
    """

    def __init__(self, monitor: ErrorMonitor, level: int = logging.NOTSET) -> None:
        super().__init__(level)
        self._monitor = monitor
        self._local = threading.local()

    def emit(self, record: logging.LogRecord) -> None:
        if record.name == "errmon" or record.name.startswith("errmon."):
            return
        if getattr(self._local, "active", False):
            return
        self._local.active = True
        try:
            message = record.getMessage()
            if record.levelno >= logging.ERROR:
                exc = record.exc_info[1] if record.exc_info else None
                self._monitor.capture_error(
                    exc or LoggedError(message),
                    {"type": "console_error", "args": [message], "logger": record.name},
                )
            else:
                self._monitor.breadcrumbs.record(
                    message,
                    category="debug",
                    level=_breadcrumb_level(record.levelno),
                    data={"args": [message], "logger": record.name},
                )
        except Exception:
            self.handleError(record)
        finally:
            self._local.active = False

    def install(self) -> None:
        root = logging.getLogger()
        if self not in root.handlers:
            root.addHandler(self)

    def uninstall(self) -> None:
        logging.getLogger().removeHandler(self)
