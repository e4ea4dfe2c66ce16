"""In-process publish/subscribe for live vehicle updates."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, ClassVar, Dict, List, Set

from busline_api.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

logger = get_logger(__name__)

DEFAULT_QUEUE_SIZE = 10


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class VehiclesUpdated:
    """The tracked line's vehicle set changed."""

    event_name: ClassVar[str] = "vehicles"

    vehicles: List[Dict[str, Any]] = field(default_factory=list)
    stale: bool = False
    timestamp: str = field(default_factory=_now_iso)

    def to_payload(self) -> Dict[str, Any]:
        return {"vehicles": self.vehicles, "stale": self.stale, "timestamp": self.timestamp}


class EventBus:
    """Fan-out of events to bounded per-subscriber queues.

    Publishing never blocks: a subscriber whose queue is full misses the
    event, and the next one brings it up to date.
    """

    def __init__(self, queue_size: int = DEFAULT_QUEUE_SIZE) -> None:
        self._queue_size = queue_size
        self._subscribers: Set[asyncio.Queue[VehiclesUpdated]] = set()
        self.published_count = 0
        self.dropped_count = 0

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    @asynccontextmanager
    async def subscribe(self) -> AsyncIterator[asyncio.Queue[VehiclesUpdated]]:
        """Register a queue for the duration of the ``async with`` block."""
        queue: asyncio.Queue[VehiclesUpdated] = asyncio.Queue(maxsize=self._queue_size)
        self._subscribers.add(queue)
        logger.debug("Live subscriber added", subscriber_count=len(self._subscribers))
        try:
            yield queue
        finally:
            self._subscribers.discard(queue)
            logger.debug("Live subscriber removed", subscriber_count=len(self._subscribers))

    def publish(self, event: VehiclesUpdated) -> int:
        """Deliver ``event`` to every subscriber with room in its queue.

        Returns:
            Number of subscribers the event was delivered to.
        """
        self.published_count += 1
        delivered = 0
        for queue in list(self._subscribers):
            try:
                queue.put_nowait(event)
                delivered += 1
            except asyncio.QueueFull:
                self.dropped_count += 1
        return delivered
