"""Exception types raised or produced by errmon."""

from __future__ import annotations


class ErrorMonitorError(Exception):
    """Base exception for all errmon errors."""


class ConfigError(ErrorMonitorError):
    """Raised when a configuration file cannot be loaded."""


class TransportError(ErrorMonitorError):
    """Raised when a telemetry batch could not be delivered."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class UnhandledRejection(Exception):
    """Wraps a non-exception reason reported by an event loop."""

    def __init__(self, reason: object) -> None:
        super().__init__(str(reason))
        self.reason = reason


class LoggedError(Exception):
    """A log record at ERROR level or above, promoted to an error report."""
