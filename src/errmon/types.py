"""Wire models for breadcrumbs, error reports and analytics events."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from pydantic_core import to_jsonable_python

BreadcrumbCategory = Literal["navigation", "http", "user", "ui", "error", "debug"]
BreadcrumbLevel = Literal["info", "warning", "error", "debug"]
Severity = Literal["low", "medium", "high", "critical"]
Environment = Literal["development", "staging", "production"]
EventCategory = Literal["user", "system", "business", "performance"]


def utcnow() -> datetime:
    return datetime.now(UTC)


class WireModel(BaseModel):
    """Immutable model serialized with camelCase keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    def to_wire(self) -> dict[str, Any]:
        """JSON-compatible dict; values pydantic cannot encode fall back to repr()."""
        return to_jsonable_python(self, by_alias=True, exclude_none=True, fallback=repr)


class Breadcrumb(WireModel):
    """A single timestamped diagnostic event."""

    timestamp: datetime = Field(default_factory=utcnow)
    message: str
    category: BreadcrumbCategory = "debug"
    level: BreadcrumbLevel = "info"
    data: dict[str, Any] | None = None


class ErrorInfo(WireModel):
    name: str
    message: str
    stack: str | None = None
    cause: str | None = None


class ErrorMetadata(WireModel):
    timestamp: datetime = Field(default_factory=utcnow)
    user_agent: str
    url: str
    user_id: str | None = None
    session_id: str
    build_version: str | None = None
    environment: Environment = "development"
    severity: Severity = "high"
    tags: list[str] = Field(default_factory=list)
    fingerprint: str
    breadcrumbs: list[Breadcrumb] = Field(default_factory=list)


class ReportContext(WireModel):
    """Where the error happened. Capture-site context keys are kept as extras."""

    model_config = ConfigDict(extra="allow")

    component: str | None = None
    props: dict[str, Any] | None = None
    state: dict[str, Any] | None = None
    route: str | None = None


class PerformanceSnapshot(WireModel):
    memory: dict[str, Any] | None = None
    timing: dict[str, Any] | None = None
    resources: list[dict[str, Any]] | None = None


class UserInfo(WireModel):
    id: str | None = None
    email: str | None = None
    role: str | None = None
    permissions: list[str] | None = None


class ErrorReport(WireModel):
    """A fully assembled report for one captured exception."""

    id: str
    error: ErrorInfo
    metadata: ErrorMetadata
    context: ReportContext = Field(default_factory=ReportContext)
    performance: PerformanceSnapshot = Field(default_factory=PerformanceSnapshot)
    user: UserInfo = Field(default_factory=UserInfo)


class AnalyticsEvent(WireModel):
    id: str
    name: str
    timestamp: datetime = Field(default_factory=utcnow)
    properties: dict[str, Any] = Field(default_factory=dict)
    user_id: str | None = None
    session_id: str
    page: str | None = None
    category: EventCategory = "user"
