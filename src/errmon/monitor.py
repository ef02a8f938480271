"""The error monitor: one explicit object owning the trail, hooks and queues."""

from __future__ import annotations

import asyncio
import atexit
import logging
import threading
from collections.abc import Callable
from contextlib import AbstractContextManager
from typing import Any

from errmon.breadcrumbs import BreadcrumbRecorder
from errmon.config import MonitorConfig
from errmon.fingerprint import EnvironmentFingerprint, FingerprintStrategy, RuntimeEnvironment
from errmon.integrations.console import ConsoleCaptureHandler
from errmon.integrations.eventloop import EventLoopHook
from errmon.integrations.excepthook import ExceptHook
from errmon.integrations.navigation import NavigationTracker
from errmon.performance import PerformanceMonitor, memory_info
from errmon.report import ReportBuilder
from errmon.scope import FileStorage, MemoryStorage, ScopeStore, StorageAdapter
from errmon.session import Session, generate_id
from errmon.transport import BufferedTransport, HttpTransport, Transport
from errmon.types import (
    AnalyticsEvent,
    Breadcrumb,
    BreadcrumbCategory,
    BreadcrumbLevel,
    ErrorReport,
    EventCategory,
    Severity,
    UserInfo,
)

logger = logging.getLogger("errmon")


class ErrorMonitor:
    """Captures errors and analytics for one application process.

    Create one at startup and hand it to the code that reports through it.
    Until ``initialize`` is called, captures are built and buffered but no
    hooks are installed and nothing is flushed periodically.
    """

    def __init__(
        self,
        config: MonitorConfig | None = None,
        *,
        transport: Transport | None = None,
        storage: StorageAdapter | None = None,
        fingerprint: FingerprintStrategy | None = None,
        runtime: RuntimeEnvironment | None = None,
        memory_probe: Callable[[], dict[str, Any] | None] | None = None,
    ) -> None:
        self.config = config or MonitorConfig()
        self.session = Session()
        self.breadcrumbs = BreadcrumbRecorder(self.config.max_breadcrumbs)
        self._storage_injected = storage is not None
        self.scope = ScopeStore(storage or self._default_storage(self.config))
        self.navigation = NavigationTracker(self.breadcrumbs)
        self.performance = PerformanceMonitor(
            self.breadcrumbs,
            long_task_threshold_ms=self.config.long_task_threshold_ms,
            memory_check_interval=self.config.memory_check_interval,
            memory_usage_threshold=self.config.memory_usage_threshold,
            memory_probe=memory_probe or memory_info,
        )
        self.transport = BufferedTransport(
            transport,
            max_buffer_size=self.config.max_buffer_size,
            flush_interval=self.config.flush_interval,
        )
        self._builder = ReportBuilder(
            self.config,
            self.session,
            self.breadcrumbs,
            self.scope,
            self.navigation,
            self.performance,
            fingerprint or EnvironmentFingerprint(),
            runtime or RuntimeEnvironment.detect(),
        )

        self._lock = threading.Lock()
        self._initialized = False
        self._excepthook = ExceptHook(self)
        self._event_loop = EventLoopHook(self)
        self._console = ConsoleCaptureHandler(self)
        self._network_patched = False
        self._http_transport: HttpTransport | None = None

    @staticmethod
    def _default_storage(config: MonitorConfig) -> StorageAdapter:
        if config.session_storage_path:
            return FileStorage(config.session_storage_path)
        return MemoryStorage()

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    # -- lifecycle ---------------------------------------------------------

    def initialize(self, config: MonitorConfig | None = None, **options: Any) -> None:
        """Apply configuration, install capture hooks and start flushing.

        Only the first call has any effect.
        """
        with self._lock:
            if self._initialized:
                return
            self._initialized = True

        if options:
            base = config or self.config
            config = MonitorConfig(**{**base.model_dump(), **options})
        if config is not None:
            self._apply_config(config)

        if self.transport.transport is None:
            self._http_transport = HttpTransport(self.config.endpoint, self.config.api_key)
            self.transport.transport = self._http_transport

        installers: list[tuple[str, Callable[[], Any]]] = [
            ("global error", self._excepthook.install),
            ("unhandled rejection", self._event_loop.install),
        ]
        if self.config.enable_console_capture:
            installers.append(("console", self._console.install))
        if self.config.enable_performance_monitoring:
            installers.append(("performance", self.performance.start))
        if self.config.enable_network_capture:
            installers.append(("network", self._patch_network))

        for name, install in installers:
            try:
                install()
            except Exception:
                logger.debug("Skipping %s capture hook", name, exc_info=True)

        self.transport.start()
        atexit.register(self._on_exit)

        self.breadcrumbs.record("Error monitoring initialized", category="debug", level="info")
        logger.debug("Error monitoring initialized (session %s)", self.session.session_id)

    def _apply_config(self, config: MonitorConfig) -> None:
        self.config = config
        self._builder.config = config
        self.breadcrumbs.resize(config.max_breadcrumbs)
        self.transport.max_buffer_size = config.max_buffer_size
        self.transport.flush_interval = config.flush_interval
        self.performance.long_task_threshold_ms = config.long_task_threshold_ms
        self.performance.memory_check_interval = config.memory_check_interval
        self.performance.memory_usage_threshold = config.memory_usage_threshold

        if config.session_storage_path and not self._storage_injected:
            previous = self.scope
            self.scope = ScopeStore(FileStorage(config.session_storage_path))
            for key, value in previous.get_tags().items():
                self.scope.set_tag(key, value)
            for key, value in previous.get_context().items():
                self.scope.set_context(key, value)
            self._builder.scope = self.scope

    def _patch_network(self) -> None:
        from errmon.integrations.http import patch_httpx

        patch_httpx(self)
        self._network_patched = True

    def _on_exit(self) -> None:
        self.transport.flush(immediate=True)

    def shutdown(self) -> None:
        """Stop background threads, remove hooks, flush what is left and close the client."""
        self.transport.stop()
        self.performance.stop()
        self._excepthook.uninstall()
        self._event_loop.uninstall()
        self._console.uninstall()
        if self._network_patched:
            from errmon.integrations.http import unpatch_httpx

            unpatch_httpx()
            self._network_patched = False
        atexit.unregister(self._on_exit)
        self.transport.flush(immediate=True)
        if self._http_transport is not None:
            self._http_transport.close()
            self._http_transport = None
            self.transport.transport = None

    def instrument_event_loop(self, loop: asyncio.AbstractEventLoop | None = None) -> bool:
        """Capture unhandled errors of ``loop`` (default: the running loop)."""
        return self._event_loop.install(loop)

    # -- errors ------------------------------------------------------------

    def capture_error(
        self,
        error: BaseException,
        context: dict[str, Any] | None = None,
        *,
        severity: Severity = "high",
    ) -> ErrorReport | None:
        """Build, filter and queue a report. Returns None if it was discarded."""
        try:
            report = self._builder.build(error, context, severity)
        except Exception:
            logger.warning("Failed to build error report", exc_info=True)
            return None

        processed = self._before_send(report)
        if not processed:
            return None

        self.transport.enqueue_error(processed)
        if processed.metadata.severity == "critical":
            self.transport.flush()

        if self.config.on_error is not None:
            try:
                self.config.on_error(processed)
            except Exception:
                logger.warning("on_error callback raised", exc_info=True)
        return processed

    def _before_send(self, report: ErrorReport) -> ErrorReport | None:
        hook = self.config.before_send
        if hook is None:
            return report
        try:
            result = hook(report)
        except Exception:
            logger.warning("before_send raised, keeping the report unchanged", exc_info=True)
            return report
        if not result:
            return None
        return result if isinstance(result, ErrorReport) else report

    def capture_exception(
        self,
        exception: Any,
        context: dict[str, Any] | None = None,
        *,
        severity: Severity = "high",
    ) -> ErrorReport | None:
        """Like ``capture_error`` but accepts anything that was raised or rejected."""
        if not isinstance(exception, BaseException):
            exception = Exception(str(exception))
        return self.capture_error(exception, context, severity=severity)

    def capture_message(
        self,
        message: str,
        level: BreadcrumbLevel = "info",
        extra: dict[str, Any] | None = None,
    ) -> Breadcrumb:
        """Record a message on the trail only; no report is queued."""
        return self.breadcrumbs.record(message, category="debug", level=level, data=extra or {})

    # -- identity and scope --------------------------------------------------

    def set_user(self, user: UserInfo | dict[str, Any] | None = None, **fields: Any) -> None:
        """Attach a user to every report and event from now on."""
        if isinstance(user, UserInfo):
            info = user.model_copy(update=fields) if fields else user
        else:
            info = UserInfo(**{**(user or {}), **fields})
        self.session.set_user(info)
        self.breadcrumbs.record(
            f"User set: {info.email or info.id or 'anonymous'}",
            category="user",
            level="info",
            data={"userId": info.id, "email": info.email, "role": info.role},
        )

    def set_tag(self, key: str, value: str) -> None:
        self.scope.set_tag(key, value)

    def set_context(self, key: str, value: Any) -> None:
        self.scope.set_context(key, value)

    # -- breadcrumbs -----------------------------------------------------------

    def add_breadcrumb(
        self,
        message: str,
        category: BreadcrumbCategory = "debug",
        level: BreadcrumbLevel = "info",
        data: dict[str, Any] | None = None,
    ) -> Breadcrumb:
        return self.breadcrumbs.record(message, category=category, level=level, data=data)

    def get_breadcrumbs(self) -> list[Breadcrumb]:
        return self.breadcrumbs.snapshot()

    def clear_breadcrumbs(self) -> None:
        self.breadcrumbs.clear()

    def navigate(self, path: str, referrer: str | None = None, title: str | None = None) -> bool:
        return self.navigation.navigate(path, referrer=referrer, title=title)

    def measure(self, name: str) -> AbstractContextManager[None]:
        """Context manager reporting the enclosed block if it runs long."""
        return self.performance.measure(name)

    # -- analytics ---------------------------------------------------------------

    def track_event(
        self,
        name: str,
        properties: dict[str, Any] | None = None,
        user_id: str | None = None,
        *,
        category: EventCategory = "user",
    ) -> AnalyticsEvent | None:
        if not self.config.enable_user_tracking:
            return None
        props = dict(properties or {})
        event = AnalyticsEvent(
            id=generate_id(),
            name=name,
            properties=props,
            user_id=user_id or self.session.user_id,
            session_id=self.session.session_id,
            page=self.navigation.current_path,
            category=category,
        )
        self.transport.enqueue_event(event)
        self.breadcrumbs.record(f"Event: {name}", category="user", level="info", data=props)
        return event

    def track_page_view(self, page: str | None = None) -> AnalyticsEvent | None:
        return self.track_event("page_view", {
            "page": page or self.navigation.current_path,
            "referrer": self.navigation.referrer,
            "title": self.navigation.title,
        })

    def track_user_action(
        self,
        action: str,
        target: str | None = None,
        properties: dict[str, Any] | None = None,
    ) -> AnalyticsEvent | None:
        return self.track_event("user_action", {
            "action": action,
            "target": target,
            **(properties or {}),
        })

    # -- delivery and introspection --------------------------------------------

    def flush(self) -> bool:
        """Send queued reports and events now."""
        return self.transport.flush()

    def get_stats(self) -> dict[str, Any]:
        return {
            "session_id": self.session.session_id,
            "user_id": self.session.user_id,
            "breadcrumb_count": len(self.breadcrumbs),
            "error_buffer_size": len(self.transport.pending_errors),
            "analytics_buffer_size": len(self.transport.pending_analytics),
            "is_initialized": self._initialized,
        }
