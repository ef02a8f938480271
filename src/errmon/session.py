"""Session identity shared by every report and event of a monitor."""

from __future__ import annotations

import threading
import time
from uuid import uuid4

from errmon.types import UserInfo


def generate_id() -> str:
    """Time-ordered id: epoch milliseconds plus 9 random hex chars."""
    return f"{int(time.time() * 1000)}-{uuid4().hex[:9]}"


class Session:
    """Session id fixed at creation and the user attached later by ``set_user``."""

    def __init__(self, session_id: str | None = None) -> None:
        self.session_id = session_id or generate_id()
        self._user = UserInfo()
        self._lock = threading.Lock()

    @property
    def user(self) -> UserInfo:
        with self._lock:
            return self._user

    @property
    def user_id(self) -> str | None:
        return self.user.id

    def set_user(self, user: UserInfo) -> None:
        with self._lock:
            self._user = user
