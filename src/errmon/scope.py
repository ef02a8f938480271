"""Tags and context merged into every report, with pluggable persistence."""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Protocol

logger = logging.getLogger("errmon")

TAGS_KEY = "error-monitor-tags"
CONTEXT_KEY = "error-monitor-context"


class StorageAdapter(Protocol):
    """String key/value storage, modeled on the browser's session storage."""

    def get_item(self, key: str) -> str | None: ...

    def set_item(self, key: str, value: str) -> None: ...


class MemoryStorage:
    """Storage that lives as long as the process."""

    def __init__(self) -> None:
        self._items: dict[str, str] = {}

    def get_item(self, key: str) -> str | None:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value


class FileStorage:
    """Storage backed by a JSON file, so values survive a restart."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def _read(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text())
        except (OSError, ValueError):
            logger.debug("Unreadable session storage at %s", self._path, exc_info=True)
            return {}
        return data if isinstance(data, dict) else {}

    def get_item(self, key: str) -> str | None:
        with self._lock:
            value = self._read().get(key)
        return value if isinstance(value, str) else None

    def set_item(self, key: str, value: str) -> None:
        with self._lock:
            items = self._read()
            items[key] = value
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=self._path.parent, prefix=".errmon-")
            with os.fdopen(fd, "w") as f:
                json.dump(items, f)
            os.replace(tmp, self._path)


class ScopeStore:
    """In-memory tags and context, mirrored to a storage adapter."""

    def __init__(self, storage: StorageAdapter | None = None) -> None:
        self._storage: StorageAdapter = storage or MemoryStorage()
        self._lock = threading.Lock()
        self._tags: dict[str, str] = {
            str(k): str(v) for k, v in self._load(TAGS_KEY).items()
        }
        self._context: dict[str, Any] = self._load(CONTEXT_KEY)

    def _load(self, key: str) -> dict[str, Any]:
        try:
            raw = self._storage.get_item(key)
            data = json.loads(raw) if raw else {}
        except Exception:
            logger.debug("Could not restore %s", key, exc_info=True)
            return {}
        return data if isinstance(data, dict) else {}

    def _persist(self, key: str, values: dict[str, Any]) -> None:
        try:
            self._storage.set_item(key, json.dumps(values, default=repr))
        except Exception:
            logger.debug("Could not persist %s", key, exc_info=True)

    def set_tag(self, key: str, value: str) -> None:
        with self._lock:
            self._tags[key] = str(value)
            tags = dict(self._tags)
        self._persist(TAGS_KEY, tags)

    def set_context(self, key: str, value: Any) -> None:
        with self._lock:
            self._context[key] = value
            context = dict(self._context)
        self._persist(CONTEXT_KEY, context)

    def get_tags(self) -> dict[str, str]:
        with self._lock:
            return dict(self._tags)

    def get_context(self) -> dict[str, Any]:
        with self._lock:
            return dict(self._context)
