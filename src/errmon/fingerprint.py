"""Runtime environment description and report fingerprinting."""

from __future__ import annotations

import hashlib
import locale
import os
import platform
import shutil
import time
from dataclasses import dataclass
from typing import Protocol

from errmon import __version__


@dataclass(frozen=True)
class RuntimeEnvironment:
    """Stable, low-entropy attributes of the running process."""

    user_agent: str
    locale: str
    timezone: str
    screen: str
    platform: str

    @classmethod
    def detect(cls) -> RuntimeEnvironment:
        size = shutil.get_terminal_size(fallback=(0, 0))
        return cls(
            user_agent=_user_agent(),
            locale=_locale_name(),
            timezone=os.environ.get("TZ") or time.tzname[0],
            screen=f"{size.columns}x{size.lines}",
            platform=platform.platform(),
        )


def _user_agent() -> str:
    return (
        f"errmon-python/{__version__} "
        f"{platform.python_implementation()}/{platform.python_version()} "
        f"({platform.system()} {platform.release()}; {platform.machine()})"
    )


def _locale_name() -> str:
    try:
        name = locale.getlocale()[0]
    except ValueError:
        name = None
    return name or os.environ.get("LANG", "C")


class FingerprintStrategy(Protocol):
    """Derives a grouping key for reports from the runtime environment."""

    def fingerprint(self, env: RuntimeEnvironment) -> str: ...


class EnvironmentFingerprint:
    """SHA-256 over user agent, locale, terminal size, timezone and platform."""

    def __init__(self, length: int = 16) -> None:
        self._length = length

    def fingerprint(self, env: RuntimeEnvironment) -> str:
        raw = "|".join([env.user_agent, env.locale, env.screen, env.timezone, env.platform])
        return hashlib.sha256(raw.encode("utf-8")).hexdigest()[: self._length]
