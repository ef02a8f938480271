"""Navigation breadcrumbs and the current location of the application."""

from __future__ import annotations

import threading

from errmon.breadcrumbs import BreadcrumbRecorder


class NavigationTracker:
    """Tracks the current path and records a breadcrumb on every change."""

    def __init__(self, recorder: BreadcrumbRecorder, base_url: str = "app://local") -> None:
        self._recorder = recorder
        self._base_url = base_url.rstrip("/")
        self._lock = threading.Lock()
        self._path = "/"
        self._referrer = ""
        self.title = ""

    @property
    def current_path(self) -> str:
        return self._path

    @property
    def referrer(self) -> str:
        return self._referrer

    @property
    def url(self) -> str:
        path = self._path if self._path.startswith("/") else f"/{self._path}"
        return f"{self._base_url}{path}"

    def navigate(self, path: str, referrer: str | None = None, title: str | None = None) -> bool:
        """Move to ``path``. Returns False when it equals the current path."""
        with self._lock:
            previous = self._path
            if path == previous:
                return False
            self._path = path
            if referrer is not None:
                self._referrer = referrer
            if title is not None:
                self.title = title
            current_referrer = self._referrer
        self._recorder.record(
            f"Navigation: {previous} → {path}",
            category="navigation",
            level="info",
            data={"from": previous, "to": path, "referrer": current_referrer},
        )
        return True
