"""Feed freshness endpoint."""

from __future__ import annotations

from typing import Any, List

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from busline_api.runtime import Runtime, get_runtime

router = APIRouter(tags=["meta"])


class FeedIngestStatus(BaseModel):
    """Status of a single upstream feed."""

    feed_type: str
    status: str
    last_success_at: str = ""
    last_attempt_at: str = ""
    error_message: str = ""
    success_count: int = 0
    failure_count: int = 0
    next_poll_in_sec: float
    is_fresh: bool


class LastIngestResponse(BaseModel):
    """Response for /meta/last-ingest."""

    feeds: List[FeedIngestStatus]
    reference_loaded: bool
    reference_extracted_at: str = ""


@router.get(
    "/meta/last-ingest",
    response_model=LastIngestResponse,
    summary="Get last ingest status per feed",
)
async def get_last_ingest(runtime: Runtime = Depends(get_runtime)) -> dict[str, Any]:
    """Return poll status for each upstream feed with a freshness flag."""
    feeds: list[dict[str, Any]] = []
    for name, poller in runtime.scheduler.pollers.items():
        cache = poller.cache
        if not cache.has_data and cache.failure_count == 0:
            status = "pending"
        elif cache.stale:
            status = "error"
        else:
            status = "ok"

        feeds.append({
            "feed_type": name,
            "status": status,
            "last_success_at": cache.updated_at.isoformat() if cache.updated_at else "",
            "last_attempt_at": cache.last_attempt_at.isoformat() if cache.last_attempt_at else "",
            "error_message": cache.error or "",
            "success_count": cache.success_count,
            "failure_count": cache.failure_count,
            "next_poll_in_sec": poller.current_backoff,
            "is_fresh": cache.has_data and not cache.stale,
        })

    snapshot = runtime.store.snapshot
    return {
        "feeds": feeds,
        "reference_loaded": snapshot is not None,
        "reference_extracted_at": snapshot.extracted_at if snapshot else "",
    }
