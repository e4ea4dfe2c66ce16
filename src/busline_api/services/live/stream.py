"""Server-Sent Events framing of the live vehicle channel."""

from __future__ import annotations

import asyncio
import json
from typing import TYPE_CHECKING, Any, Dict, Optional

from busline_api.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from busline_api.services.live.events import EventBus
    from busline_api.services.vehicles import VehicleService

logger = get_logger(__name__)

HEARTBEAT_FRAME = ":heartbeat\n\n"
DEFAULT_HEARTBEAT_SEC = 25.0

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def format_event(payload: Dict[str, Any], event: Optional[str] = None) -> str:
    """Encode one SSE frame."""
    data = json.dumps(payload, separators=(",", ":"))
    if event:
        return f"event: {event}\ndata: {data}\n\n"
    return f"data: {data}\n\n"


class LiveStream:
    """One client's view of the live channel.

    Subscribes before the ``init`` frame is built so no update published in
    between is lost, then relays ``vehicles`` events and emits a heartbeat
    comment whenever the channel has been idle for ``heartbeat_sec``.
    """

    def __init__(
        self,
        bus: EventBus,
        vehicles: VehicleService,
        heartbeat_sec: float = DEFAULT_HEARTBEAT_SEC,
    ) -> None:
        self._bus = bus
        self._vehicles = vehicles
        self._heartbeat_sec = heartbeat_sec

    async def events(self) -> AsyncIterator[str]:
        async with self._bus.subscribe() as queue:
            logger.info("Live stream opened", subscriber_count=self._bus.subscriber_count)
            try:
                yield format_event(self._vehicles.snapshot_payload(), "init")
                while True:
                    try:
                        event = await asyncio.wait_for(queue.get(), timeout=self._heartbeat_sec)
                    except asyncio.TimeoutError:
                        yield HEARTBEAT_FRAME
                        continue
                    yield format_event(event.to_payload(), event.event_name)
            finally:
                logger.info("Live stream closed")
