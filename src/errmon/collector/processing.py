"""Server-side enrichment of received reports and events."""

from __future__ import annotations

import hashlib
import re
from collections import Counter
from datetime import UTC, datetime
from typing import Any
from urllib.parse import urlsplit

from errmon.types import AnalyticsEvent, ErrorReport, Severity

_DIGITS = re.compile(r"\d+")
_FRAME = re.compile(r'File "(?P<file>[^"]+)", line (?P<line>\d+), in (?P<function>.+)')
_MOBILE = re.compile(r"Mobile|Android|iPhone|iPad")
_BOT = re.compile(r"bot|crawler|spider", re.IGNORECASE)

_LOADING_ERRORS = {"ImportError", "ModuleNotFoundError"}
_NETWORK_ERRORS = {
    "ConnectionError", "ConnectError", "ConnectTimeout", "ReadTimeout",
    "TimeoutException", "NetworkError", "RemoteProtocolError",
}


def error_fingerprint(report: ErrorReport) -> str:
    """Group key: same error class, message shape, component and page."""
    components = [
        report.error.name,
        _DIGITS.sub("N", report.error.message),
        report.context.component or "",
        report.metadata.url.split("?")[0],
    ]
    return hashlib.sha256("|".join(components).encode("utf-8")).hexdigest()[:16]


def calculate_severity(report: ErrorReport) -> Severity:
    route = report.context.route or ""
    if report.error.name in _LOADING_ERRORS:
        return "low"
    if report.error.name in _NETWORK_ERRORS or "Network Error" in report.error.message:
        return "medium"
    if "/payment" in route:
        return "critical"
    if "/admin" in route:
        return "high"
    return report.metadata.severity or "medium"


def categorize_error(report: ErrorReport) -> str:
    name = report.error.name
    if name in _LOADING_ERRORS:
        return "module_loading"
    if name in _NETWORK_ERRORS or "Network" in name:
        return "network"
    if "TypeError" in name:
        return "type_error"
    if name in ("NameError", "UnboundLocalError"):
        return "reference_error"
    if report.context.component:
        return "component_error"
    return "unknown"


def parse_stack_trace(stack: str | None) -> list[dict[str, Any]]:
    """Frames of a formatted Python traceback, library frames left out."""
    if not stack:
        return []
    frames = []
    for line in stack.splitlines():
        match = _FRAME.search(line)
        if not match:
            continue
        file = match.group("file")
        if "site-packages" in file or "dist-packages" in file:
            continue
        frames.append({
            "function": match.group("function").strip(),
            "file": file,
            "line": int(match.group("line")),
        })
    return frames


def parse_user_agent(user_agent: str | None) -> dict[str, Any]:
    if not user_agent:
        return {}
    is_mobile = bool(_MOBILE.search(user_agent))
    return {
        "isMobile": is_mobile,
        "isBot": bool(_BOT.search(user_agent)),
        "platform": "mobile" if is_mobile else "desktop",
    }


def process_error(report: ErrorReport) -> dict[str, Any]:
    return {
        **report.to_wire(),
        "processed": {
            "timestamp": datetime.now(UTC).isoformat(),
            "fingerprint": error_fingerprint(report),
            "severity": calculate_severity(report),
            "category": categorize_error(report),
            "stackTrace": parse_stack_trace(report.error.stack),
        },
    }


def process_event(event: AnalyticsEvent) -> dict[str, Any]:
    return {
        **event.to_wire(),
        "processed": {
            "timestamp": datetime.now(UTC).isoformat(),
            "deviceInfo": parse_user_agent(event.properties.get("userAgent")),
        },
    }


def normalize_url(url: str) -> str:
    parts = urlsplit(url)
    if not parts.scheme:
        return url
    return parts.path + (f"?{parts.query}" if parts.query else "")


def pattern_severity(count: int, frequency: float) -> Severity:
    if frequency > 0.5 or count > 20:
        return "critical"
    if frequency > 0.2 or count > 10:
        return "high"
    if frequency > 0.1 or count > 5:
        return "medium"
    return "low"


def detect_patterns(errors: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Recurring ``name:url`` combinations, most frequent first."""
    if not errors:
        return []
    counts: Counter[str] = Counter()
    last_seen: dict[str, str] = {}
    for err in errors:
        pattern = f"{err['error']['name']}:{normalize_url(err['metadata'].get('url', '')) or 'unknown'}"
        counts[pattern] += 1
        timestamp = err["metadata"].get("timestamp", "")
        if timestamp > last_seen.get(pattern, ""):
            last_seen[pattern] = timestamp

    total = len(errors)
    return [
        {
            "pattern": pattern,
            "count": count,
            "frequency": count / total,
            "lastOccurrence": last_seen.get(pattern),
            "severity": pattern_severity(count, count / total),
        }
        for pattern, count in counts.most_common()
    ]
