"""Vehicle positions: snapshot endpoint and live SSE stream."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from busline_api.routers.schemas import VehiclesResponse
from busline_api.runtime import Runtime, get_runtime
from busline_api.services.live.stream import SSE_HEADERS

router = APIRouter(prefix="/api", tags=["vehicles"])


@router.get(
    "/vehicles",
    response_model=VehiclesResponse,
    summary="Current vehicles and route topology",
)
async def get_vehicles(runtime: Runtime = Depends(get_runtime)) -> dict[str, Any]:
    return runtime.vehicle_service.snapshot_payload()


@router.get("/vehicles/stream", summary="Live vehicle updates (Server-Sent Events)")
async def stream_vehicles(runtime: Runtime = Depends(get_runtime)) -> StreamingResponse:
    """``init`` with vehicles and topology, then ``vehicles`` on every change."""
    return StreamingResponse(
        runtime.live_stream().events(),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
