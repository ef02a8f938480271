"""In-memory retention of processed reports for stats and grouping."""

from __future__ import annotations

from collections import Counter, deque
from datetime import datetime
from typing import Any

from errmon.collector.processing import detect_patterns, normalize_url


class ReportStore:
    """Keeps the most recent processed errors and events."""

    def __init__(self, max_items: int = 1000) -> None:
        self._errors: deque[dict[str, Any]] = deque(maxlen=max_items)
        self._events: deque[dict[str, Any]] = deque(maxlen=max_items)
        self._session_start: dict[str, datetime] = {}

    def add_error(self, processed: dict[str, Any]) -> None:
        self._errors.append(processed)

    def add_event(self, processed: dict[str, Any]) -> None:
        self._events.append(processed)

    def impacted_users(self, fingerprint: str) -> int:
        return len({
            e["metadata"].get("userId") or e["metadata"].get("sessionId")
            for e in self._errors
            if e["processed"]["fingerprint"] == fingerprint
        })

    def similar_errors(self, fingerprint: str, limit: int = 5) -> list[str]:
        ids = [e["id"] for e in self._errors if e["processed"]["fingerprint"] == fingerprint]
        return ids[-limit:]

    def session_duration(self, session_id: str, timestamp: datetime) -> float:
        """Milliseconds between the first event seen for a session and ``timestamp``."""
        started = self._session_start.setdefault(session_id, timestamp)
        return max((timestamp - started).total_seconds() * 1000, 0.0)

    @property
    def errors(self) -> list[dict[str, Any]]:
        return list(self._errors)

    @property
    def events(self) -> list[dict[str, Any]]:
        return list(self._events)

    def stats(self) -> dict[str, Any]:
        errors = list(self._errors)
        by_url = Counter(normalize_url(e["metadata"].get("url", "")) for e in errors)
        return {
            "total": len(errors),
            "analytics": len(self._events),
            "byName": dict(Counter(e["error"]["name"] for e in errors)),
            "byUrl": dict(by_url),
            "bySeverity": dict(Counter(e["processed"]["severity"] for e in errors)),
            "recentErrors": [e["id"] for e in errors[-10:]],
            "patterns": detect_patterns(errors),
        }
