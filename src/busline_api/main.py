"""FastAPI application entry point."""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from busline_api.config import get_settings
from busline_api.logging import (
    bind_request_context,
    clear_request_context,
    get_logger,
    setup_logging,
)
from busline_api.routers.admin import router as admin_router
from busline_api.routers.departures import router as departures_router
from busline_api.routers.meta import router as meta_router
from busline_api.routers.vehicles import router as vehicles_router
from busline_api.runtime import Runtime

logger = get_logger(__name__)


def create_app(runtime: Optional[Runtime] = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        runtime: Pre-built runtime to serve. When omitted one is built from
            the environment settings at startup.
    """
    settings = runtime.settings if runtime is not None else get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan handler."""
        setup_logging(settings)
        logger.info("Starting Bus 80 Tracker API", environment=settings.environment)

        active = app.state.runtime = runtime or Runtime.build(settings)
        await active.startup()

        yield

        await active.shutdown()
        logger.info("Shutting down Bus 80 Tracker API")

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description=(
            "Realtime tracker for bus line 80 (Zandvoort - Haarlem - Amsterdam), "
            "reconciling OVapi departures with GTFS-Realtime predictions"
        ),
        lifespan=lifespan,
        docs_url="/docs" if settings.environment != "production" else None,
        redoc_url="/redoc" if settings.environment != "production" else None,
    )
    if runtime is not None:
        app.state.runtime = runtime

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.environment == "development" else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Request ID middleware
    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next: Any) -> Any:
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
        bind_request_context(request_id=request_id, path=request.url.path)

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id

        clear_request_context()
        return response

    # Include routers
    app.include_router(departures_router)
    app.include_router(vehicles_router)
    app.include_router(meta_router)
    app.include_router(admin_router)

    # Health endpoint
    @app.get("/health", tags=["meta"])
    async def health_check(request: Request) -> dict[str, Any]:
        """Health check endpoint returning application status."""
        active: Runtime = request.app.state.runtime
        scheduler_status = active.scheduler.get_status()
        reference_loaded = active.store.is_loaded
        polling_ok = scheduler_status["running"] or not active.settings.poller_auto_start

        issues: list[str] = []
        if not reference_loaded:
            issues.append("No reference snapshot loaded")
        if active.settings.poller_auto_start and not scheduler_status["running"]:
            issues.append("Polling scheduler is not running")
        stale_feeds = [
            name for name, feed in scheduler_status["feeds"].items() if feed["stale"]
        ]
        if stale_feeds:
            issues.append("Stale feeds: " + ", ".join(sorted(stale_feeds)))

        if not reference_loaded:
            status = "unhealthy"
        elif polling_ok and not stale_feeds:
            status = "healthy"
        else:
            status = "degraded"

        return {
            "service": active.settings.app_name,
            "status": status,
            "version": active.settings.app_version,
            "environment": active.settings.environment,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "checks": {
                "referenceLoaded": reference_loaded,
                "polling": {
                    "running": scheduler_status["running"],
                    "staleFeeds": stale_feeds,
                },
                "liveSubscribers": active.bus.subscriber_count,
            },
            "issues": issues,
        }

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error("Unhandled exception", exc_info=exc, path=request.url.path)
        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_server_error",
                "message": "An unexpected error occurred",
            },
        )

    return app


app = create_app()
