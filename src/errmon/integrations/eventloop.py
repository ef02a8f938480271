"""Capture of exceptions that no awaiting code handled in an asyncio loop."""

from __future__ import annotations

import asyncio
import asyncio.events
import logging
import weakref
from typing import TYPE_CHECKING, Any

from errmon.errors import UnhandledRejection

if TYPE_CHECKING:
    from errmon.monitor import ErrorMonitor

logger = logging.getLogger("errmon.integrations")


class EventLoopHook:
    """Installs an exception handler on asyncio event loops.

    The loop calls it for task exceptions nobody retrieved, failing callbacks
    and similar. The failure is reported, then the previous handler (or the
    loop default) runs.

    ``install()`` without a loop also wraps ``asyncio.new_event_loop`` so that
    loops created later, such as the one ``asyncio.run`` starts, are hooked
    as they are created.
    """

    def __init__(self, monitor: ErrorMonitor) -> None:
        self._monitor = monitor
        self._previous: weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, Any] = (
            weakref.WeakKeyDictionary()
        )
        self._original_new_event_loop: Any = None
        self._patched_new_event_loop: Any = None

    def install(self, loop: asyncio.AbstractEventLoop | None = None) -> bool:
        """Hook ``loop``, or the running loop and every loop created from now on.

        Returns True when a loop was hooked right away.
        """
        if loop is None:
            self._patch_new_event_loop()
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                return False
        if loop in self._previous:
            return True
        self._previous[loop] = loop.get_exception_handler()
        loop.set_exception_handler(self._handle)
        return True

    def uninstall(self) -> None:
        self._unpatch_new_event_loop()
        for loop, previous in list(self._previous.items()):
            if loop.get_exception_handler() == self._handle and not loop.is_closed():
                loop.set_exception_handler(previous)
        self._previous.clear()

    def _patch_new_event_loop(self) -> None:
        if self._original_new_event_loop is not None:
            return  # Already patched

        original = asyncio.events.new_event_loop

        def new_event_loop() -> asyncio.AbstractEventLoop:
            loop = original()
            try:
                self.install(loop)
            except Exception:
                logger.debug("Failed to hook new event loop", exc_info=True)
            return loop

        self._original_new_event_loop = original
        self._patched_new_event_loop = new_event_loop
        asyncio.events.new_event_loop = new_event_loop  # type: ignore[assignment]
        asyncio.new_event_loop = new_event_loop  # type: ignore[assignment]

    def _unpatch_new_event_loop(self) -> None:
        original = self._original_new_event_loop
        if original is None:
            return
        if asyncio.events.new_event_loop is self._patched_new_event_loop:
            asyncio.events.new_event_loop = original  # type: ignore[assignment]
        if asyncio.new_event_loop is self._patched_new_event_loop:
            asyncio.new_event_loop = original  # type: ignore[assignment]
        self._original_new_event_loop = None
        self._patched_new_event_loop = None

    def _handle(self, loop: asyncio.AbstractEventLoop, context: dict[str, Any]) -> None:
        reason = context.get("exception")
        if not isinstance(reason, BaseException):
            reason = UnhandledRejection(context.get("message", "Unhandled event loop error"))
        try:
            self._monitor.capture_error(
                reason,
                {
                    "type": "unhandled_promise_rejection",
                    "reason": context.get("message") or str(reason),
                },
                severity="high",
            )
        except Exception:
            logger.debug("Failed to capture event loop error", exc_info=True)

        previous = self._previous.get(loop)
        if previous is not None:
            previous(loop, context)
        else:
            loop.default_exception_handler(context)
