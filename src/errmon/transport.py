"""Buffered delivery of error reports and analytics events."""

from __future__ import annotations

import json
import logging
import threading
from typing import Any, Protocol

import httpx

from errmon.errors import TransportError
from errmon.types import AnalyticsEvent, ErrorReport

logger = logging.getLogger("errmon.transport")

_BEACON_TIMEOUT = 2.0


class Transport(Protocol):
    """Delivers one ``{"errors": [...], "analytics": [...]}`` payload."""

    supports_beacon: bool

    def send(self, payload: dict[str, Any]) -> None:
        """Send and wait for the outcome; raise TransportError on failure."""
        ...

    def send_beacon(self, payload: dict[str, Any]) -> bool:
        """Fire-and-forget send usable during interpreter teardown."""
        ...


class HttpTransport:
    """POSTs payloads to the collector endpoint with httpx."""

    supports_beacon = True

    def __init__(self, endpoint: str, api_key: str = "", client: httpx.Client | None = None) -> None:
        self.endpoint = endpoint
        self._headers = {"content-type": "application/json"}
        if api_key:
            self._headers["x-errmon-key"] = api_key
        # No timeout: a hung request only delays the next flush.
        self._client = client or httpx.Client(timeout=None)

    def send(self, payload: dict[str, Any]) -> None:
        try:
            resp = self._client.post(self.endpoint, json=payload, headers=self._headers)
        except httpx.HTTPError as exc:
            raise TransportError(f"POST {self.endpoint} failed: {exc}") from exc
        if resp.status_code >= 400:
            raise TransportError(
                f"Collector returned {resp.status_code}", status_code=resp.status_code
            )

    def send_beacon(self, payload: dict[str, Any]) -> bool:
        try:
            httpx.post(
                self.endpoint,
                content=json.dumps(payload).encode("utf-8"),
                headers=self._headers,
                timeout=_BEACON_TIMEOUT,
            )
        except httpx.HTTPError as exc:
            logger.debug("Beacon to %s failed: %s", self.endpoint, exc)
            return False
        return True

    def close(self) -> None:
        self._client.close()


class BufferedTransport:
    """Queues reports and events in memory and flushes them in batches.

    A flush swaps the queues for empty ones under the lock and sends outside
    it, so anything captured during an in-flight send waits for the next
    flush. Failed batches go back to the front of their queue. Each queue
    holds at most ``max_buffer_size`` items, dropping the oldest first, also
    while nothing is flushing.
    """

    def __init__(
        self,
        transport: Transport | None = None,
        max_buffer_size: int = 50,
        flush_interval: float = 30.0,
    ) -> None:
        self.transport = transport
        self.max_buffer_size = max_buffer_size
        self.flush_interval = flush_interval
        self._lock = threading.Lock()
        self._errors: list[ErrorReport] = []
        self._analytics: list[AnalyticsEvent] = []
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def pending_errors(self) -> list[ErrorReport]:
        with self._lock:
            return list(self._errors)

    @property
    def pending_analytics(self) -> list[AnalyticsEvent]:
        with self._lock:
            return list(self._analytics)

    def enqueue_error(self, report: ErrorReport) -> None:
        with self._lock:
            self._errors.append(report)
            del self._errors[: -self.max_buffer_size]

    def enqueue_event(self, event: AnalyticsEvent) -> None:
        with self._lock:
            self._analytics.append(event)
            del self._analytics[: -self.max_buffer_size]

    def flush(self, immediate: bool = False) -> bool:
        """Send everything queued. Returns False if the batch was requeued.

        ``immediate`` uses the transport's beacon primitive when it has one,
        for flushing while the process is going away.
        """
        if self.transport is None:
            return False

        with self._lock:
            if not self._errors and not self._analytics:
                return True
            errors, self._errors = self._errors, []
            analytics, self._analytics = self._analytics, []

        try:
            payload = {
                "errors": [r.to_wire() for r in errors],
                "analytics": [e.to_wire() for e in analytics],
            }
            if immediate and getattr(self.transport, "supports_beacon", False):
                delivered = self.transport.send_beacon(payload)
                if not delivered:
                    raise TransportError("Beacon was not accepted")
            else:
                self.transport.send(payload)
        except Exception as exc:
            logger.warning("Failed to send error reports: %s", exc)
            self._requeue(errors, analytics)
            return False

        logger.debug("Flushed %d errors and %d events", len(errors), len(analytics))
        return True

    def _requeue(self, errors: list[ErrorReport], analytics: list[AnalyticsEvent]) -> None:
        with self._lock:
            self._errors = (errors + self._errors)[-self.max_buffer_size :]
            self._analytics = (analytics + self._analytics)[-self.max_buffer_size :]

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the periodic flush thread."""
        if self.is_running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._flush_loop, name="errmon-flush", daemon=True)
        self._thread.start()

    def _flush_loop(self) -> None:
        while not self._stop.wait(self.flush_interval):
            self.flush()

    def stop(self) -> None:
        """Stop the periodic flush thread without flushing."""
        self._stop.set()
        if self._thread:
            self._thread.join(timeout=5)
            self._thread = None
