"""Admin routes for reference data and polling control."""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from busline_api.logging import get_logger
from busline_api.runtime import Runtime, get_runtime

logger = get_logger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


class ReferenceStatusResponse(BaseModel):
    """Active snapshot and refresher state."""

    loaded: bool
    extracted_at: Optional[str] = None
    etag: Optional[str] = None
    last_modified: Optional[str] = None
    route_ids: List[str]
    trip_count: int
    in_progress: bool
    refresh_count: int
    last_refresh_at: Optional[str] = None
    last_error: Optional[str] = None


class ReferenceRefreshResponse(BaseModel):
    updated: bool
    status: ReferenceStatusResponse


class PollingStatusResponse(BaseModel):
    running: bool
    started_at: Optional[str] = None
    feeds: Dict[str, Dict[str, Any]]
    staleness: Dict[str, Any]


# TODO: Protect admin routes once the deployment has an auth proxy in front.
@router.post(
    "/reference/refresh",
    response_model=ReferenceRefreshResponse,
    summary="Re-derive reference data from the static dataset",
    description=(
        "Checks the upstream version token and, when it changed (or when "
        "force=true), downloads and extracts the dataset and installs the "
        "new snapshot. Returns 409 while another refresh is running."
    ),
)
async def refresh_reference(
    force: bool = Query(default=False, description="Refresh even if the version is unchanged"),
    runtime: Runtime = Depends(get_runtime),
) -> Dict[str, Any]:
    refresher = runtime.refresher
    if refresher.in_progress:
        raise HTTPException(status_code=409, detail="Reference refresh already in progress")

    logger.info("Reference refresh requested", force=force)
    updated = await refresher.refresh(force=force)
    return {"updated": updated, "status": refresher.get_status()}


@router.get(
    "/reference/status",
    response_model=ReferenceStatusResponse,
    summary="Active reference snapshot status",
)
async def reference_status(runtime: Runtime = Depends(get_runtime)) -> Dict[str, Any]:
    return runtime.refresher.get_status()


@router.get(
    "/polling/status",
    response_model=PollingStatusResponse,
    summary="Per-feed poller state, backoff and staleness counters",
)
async def polling_status(runtime: Runtime = Depends(get_runtime)) -> Dict[str, Any]:
    return runtime.scheduler.get_status()


@router.post(
    "/polling/run-once",
    response_model=Dict[str, bool],
    summary="Poll every feed once",
)
async def polling_run_once(runtime: Runtime = Depends(get_runtime)) -> Dict[str, bool]:
    """Run one cycle per feed now; a feed already mid-poll reports false."""
    return await runtime.scheduler.run_once()


@router.post(
    "/polling/start",
    response_model=PollingStatusResponse,
    summary="Start the polling scheduler",
)
async def polling_start(runtime: Runtime = Depends(get_runtime)) -> Dict[str, Any]:
    await runtime.scheduler.start()
    return runtime.scheduler.get_status()


@router.post(
    "/polling/stop",
    response_model=PollingStatusResponse,
    summary="Stop the polling scheduler",
)
async def polling_stop(runtime: Runtime = Depends(get_runtime)) -> Dict[str, Any]:
    await runtime.scheduler.stop()
    return runtime.scheduler.get_status()
