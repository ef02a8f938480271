"""HTTP endpoint receiving error reports and analytics batches."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

import uvicorn
from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError

from errmon import __version__
from errmon.collector.processing import process_error, process_event
from errmon.collector.ratelimit import RateLimiter
from errmon.collector.store import ReportStore
from errmon.config import CollectorSettings, EnvironmentSettings
from errmon.types import AnalyticsEvent, ErrorReport

logger = logging.getLogger("errmon.collector")

router = APIRouter(tags=["monitoring"])

MAX_ITEMS_PER_BATCH = 1000


class MonitoringBatch(BaseModel):
    """Body of ``POST /api/monitoring/errors``."""

    errors: list[ErrorReport]
    analytics: list[AnalyticsEvent]


def client_ip(request: Request) -> str:
    headers = request.headers
    if ip := headers.get("cf-connecting-ip"):
        return ip
    if ip := headers.get("x-real-ip"):
        return ip
    if forwarded := headers.get("x-forwarded-for"):
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


@router.post("/monitoring/errors")
async def receive_batch(request: Request) -> JSONResponse:
    """Validate, enrich and retain a batch of reports and events."""
    limiter: RateLimiter = request.app.state.limiter
    store: ReportStore = request.app.state.store

    if limiter.is_limited(f"error-monitoring:{client_ip(request)}"):
        return JSONResponse({"error": "Too many requests"}, status_code=429)

    try:
        body = await request.json()
        batch = MonitoringBatch.model_validate(body)
    except ValidationError as exc:
        return JSONResponse(
            {"error": "Invalid request data", "details": exc.errors(include_url=False, include_context=False)},
            status_code=400,
        )
    except ValueError:
        return JSONResponse({"error": "Invalid request data"}, status_code=400)

    if len(batch.errors) + len(batch.analytics) > MAX_ITEMS_PER_BATCH:
        return JSONResponse(
            {"error": f"Batch too large (max {MAX_ITEMS_PER_BATCH} items)"},
            status_code=400,
        )

    for report in batch.errors:
        processed = process_error(report)
        store.add_error(processed)
        fingerprint = processed["processed"]["fingerprint"]
        processed["processed"]["impactedUsers"] = store.impacted_users(fingerprint)
        processed["processed"]["similarErrors"] = store.similar_errors(fingerprint)

    for event in batch.analytics:
        processed = process_event(event)
        processed["processed"]["sessionDuration"] = store.session_duration(
            event.session_id, event.timestamp
        )
        store.add_event(processed)

    logger.info(
        "Stored %d error reports and %d analytics events",
        len(batch.errors), len(batch.analytics),
    )
    return JSONResponse({
        "success": True,
        "processed": {"errors": len(batch.errors), "analytics": len(batch.analytics)},
    })


@router.get("/monitoring/errors")
async def health() -> dict[str, Any]:
    return {
        "status": "healthy",
        "timestamp": datetime.now(UTC).isoformat(),
        "version": EnvironmentSettings().build_version,
    }


@router.get("/monitoring/errors/stats")
async def stats(request: Request) -> dict[str, Any]:
    store: ReportStore = request.app.state.store
    return store.stats()


def create_app(settings: CollectorSettings | None = None) -> FastAPI:
    settings = settings or CollectorSettings()
    app = FastAPI(title="errmon collector", version=__version__)
    app.state.settings = settings
    app.state.store = ReportStore(settings.max_stored_reports)
    app.state.limiter = RateLimiter(settings.rate_limit, settings.rate_window)
    app.include_router(router, prefix="/api")
    return app


app = create_app()


def main(settings: CollectorSettings | None = None) -> None:
    """Run the collector server."""
    settings = settings or CollectorSettings()
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_level="debug" if settings.debug else "info",
    )


if __name__ == "__main__":
    main()
