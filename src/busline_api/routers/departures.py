"""Departure board endpoint."""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from busline_api.logging import get_logger
from busline_api.routers.schemas import DeparturesResponse
from busline_api.runtime import Runtime, get_runtime
from busline_api.services.errors import DecodeError, FetchError

logger = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["departures"])


@router.get(
    "/departures",
    response_model=DeparturesResponse,
    summary="Merged departure board for a timing point",
)
async def get_departures(
    tpc: Optional[str] = Query(default=None, description="OVapi timing point code"),
    direction: Optional[int] = Query(default=None, ge=1, le=2),
    walk_time: int = Query(default=0, alias="walkTime", ge=0, le=180),
    runtime: Runtime = Depends(get_runtime),
) -> dict[str, Any]:
    """Scheduled departures merged with realtime predictions.

    Defaults to the configured timing point and direction. A timing point
    that is not polled is fetched from OVapi directly; if that fails the
    endpoint answers 502.
    """
    settings = runtime.settings
    tpc = tpc or settings.default_tpc
    direction = direction or settings.default_direction

    try:
        return await runtime.departure_service.board(tpc, direction, walk_time)
    except (FetchError, DecodeError) as exc:
        logger.warning("Departure lookup failed", tpc=tpc, error=str(exc))
        raise HTTPException(
            status_code=502,
            detail=f"Failed to fetch departures for TPC {tpc}",
        ) from exc
