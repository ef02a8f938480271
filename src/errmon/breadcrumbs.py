"""Bounded breadcrumb trail for error context."""

from __future__ import annotations

import threading
from collections import deque
from typing import Any

from errmon.types import Breadcrumb, BreadcrumbCategory, BreadcrumbLevel

DEFAULT_MAX_BREADCRUMBS = 100


class BreadcrumbRecorder:
    """Keeps the most recent breadcrumbs, oldest evicted first."""

    def __init__(self, max_breadcrumbs: int = DEFAULT_MAX_BREADCRUMBS) -> None:
        self._lock = threading.Lock()
        self._crumbs: deque[Breadcrumb] = deque(maxlen=max_breadcrumbs)

    @property
    def max_breadcrumbs(self) -> int:
        return self._crumbs.maxlen or 0

    def resize(self, max_breadcrumbs: int) -> None:
        """Change the bound, keeping the most recent entries."""
        with self._lock:
            self._crumbs = deque(self._crumbs, maxlen=max_breadcrumbs)

    def add(self, crumb: Breadcrumb) -> None:
        with self._lock:
            self._crumbs.append(crumb)

    def record(
        self,
        message: str,
        category: BreadcrumbCategory = "debug",
        level: BreadcrumbLevel = "info",
        data: dict[str, Any] | None = None,
    ) -> Breadcrumb:
        """Build a breadcrumb stamped with the current time and append it."""
        crumb = Breadcrumb(message=message, category=category, level=level, data=data)
        self.add(crumb)
        return crumb

    def snapshot(self) -> list[Breadcrumb]:
        """Return copies of the current trail in insertion order."""
        with self._lock:
            crumbs = list(self._crumbs)
        return [c.model_copy(deep=True) for c in crumbs]

    def clear(self) -> None:
        with self._lock:
            self._crumbs.clear()

    def __len__(self) -> int:
        return len(self._crumbs)
