"""Assembles error reports from exceptions and the monitor's current state."""

from __future__ import annotations

import logging
import sys
import threading
import traceback
from typing import TYPE_CHECKING, Any

from errmon.config import EnvironmentSettings, MonitorConfig
from errmon.session import generate_id
from errmon.types import (
    ErrorInfo,
    ErrorMetadata,
    ErrorReport,
    PerformanceSnapshot,
    ReportContext,
    Severity,
    UserInfo,
)

if TYPE_CHECKING:
    from errmon.breadcrumbs import BreadcrumbRecorder
    from errmon.fingerprint import FingerprintStrategy, RuntimeEnvironment
    from errmon.integrations.navigation import NavigationTracker
    from errmon.performance import PerformanceMonitor
    from errmon.scope import ScopeStore
    from errmon.session import Session

logger = logging.getLogger("errmon")

_MAX_REPR = 200


def _safe_repr(value: Any) -> str:
    try:
        r = repr(value)
    except Exception:
        return "<unrepresentable>"
    return r[:_MAX_REPR] if len(r) > _MAX_REPR else r


def error_info(exc: BaseException) -> ErrorInfo:
    cause = exc.__cause__ or exc.__context__
    stack = None
    if exc.__traceback__ is not None:
        stack = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return ErrorInfo(
        name=type(exc).__name__,
        message=str(exc),
        stack=stack,
        cause=str(cause) if cause is not None else None,
    )


def frame_locals(exc: BaseException) -> dict[str, str]:
    """Locals of the innermost frame of the traceback, as truncated reprs."""
    tb = exc.__traceback__
    if tb is None:
        return {}
    while tb.tb_next is not None:
        tb = tb.tb_next
    return {
        name: _safe_repr(value)
        for name, value in tb.tb_frame.f_locals.items()
        if not name.startswith("__")
    }


def thread_stacks() -> dict[str, str]:
    """Current stack of every live thread."""
    names = {t.ident: t.name for t in threading.enumerate()}
    return {
        names.get(ident, str(ident)): "".join(traceback.format_stack(frame))
        for ident, frame in sys._current_frames().items()
    }


class ReportBuilder:
    def __init__(
        self,
        config: MonitorConfig,
        session: Session,
        recorder: BreadcrumbRecorder,
        scope: ScopeStore,
        navigation: NavigationTracker,
        performance: PerformanceMonitor,
        fingerprint: FingerprintStrategy,
        runtime: RuntimeEnvironment,
    ) -> None:
        self.config = config
        self._session = session
        self._recorder = recorder
        self.scope = scope
        self._navigation = navigation
        self._performance = performance
        self._fingerprint = fingerprint
        self._runtime = runtime

    def build(
        self,
        exc: BaseException,
        context: dict[str, Any] | None = None,
        severity: Severity = "high",
    ) -> ErrorReport:
        """Build a self-contained report; every enrichment step is best-effort."""
        stored_context = self.scope.get_context()
        return ErrorReport(
            id=generate_id(),
            error=error_info(exc),
            metadata=self._metadata(severity),
            context=self._context(exc, stored_context, context or {}),
            performance=self._performance_snapshot(),
            user=self._user(stored_context),
        )

    def _metadata(self, severity: Severity) -> ErrorMetadata:
        env = EnvironmentSettings()
        try:
            fingerprint = self._fingerprint.fingerprint(self._runtime)
        except Exception:
            logger.debug("Fingerprint strategy failed", exc_info=True)
            fingerprint = "unknown"
        return ErrorMetadata(
            user_agent=self._runtime.user_agent,
            url=self._navigation.url,
            user_id=self._session.user_id,
            session_id=self._session.session_id,
            build_version=env.build_version,
            environment=env.environment,
            severity=severity,
            tags=[f"{k}:{v}" for k, v in self.scope.get_tags().items()],
            fingerprint=fingerprint,
            breadcrumbs=self._recorder.snapshot(),
        )

    def _context(
        self,
        exc: BaseException,
        stored: dict[str, Any],
        captured: dict[str, Any],
    ) -> ReportContext:
        values: dict[str, Any] = {**stored, **captured}
        values.setdefault("route", self._navigation.current_path)
        if self.config.enable_dom_capture and "state" not in captured:
            values["state"] = frame_locals(exc)
        if self.config.enable_screenshot:
            values["threads"] = thread_stacks()
        try:
            return ReportContext(**values)
        except Exception:
            # props or state that is not a mapping
            logger.debug("Invalid report context, keeping route only", exc_info=True)
            return ReportContext(route=values["route"], capture_context=_safe_repr(captured))

    def _performance_snapshot(self) -> PerformanceSnapshot:
        if not self.config.enable_performance_monitoring:
            return PerformanceSnapshot()
        try:
            return self._performance.snapshot()
        except Exception:
            logger.debug("Performance snapshot failed", exc_info=True)
            return PerformanceSnapshot()

    def _user(self, stored: dict[str, Any]) -> UserInfo:
        user = self._session.user
        try:
            return UserInfo(
                id=user.id,
                email=user.email or stored.get("userEmail"),
                role=user.role or stored.get("userRole"),
                permissions=user.permissions or stored.get("userPermissions"),
            )
        except Exception:
            return user
