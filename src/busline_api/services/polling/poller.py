"""Per-feed polling state machine with busy guard and exponential backoff."""

from __future__ import annotations

import asyncio
import inspect
import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Generic, Iterable, Optional, TypeVar

from busline_api.logging import get_logger
from busline_api.models.realtime import VehiclePosition
from busline_api.services.errors import DecodeError, FetchError

logger = get_logger(__name__)

T = TypeVar("T")

DEFAULT_MAX_BACKOFF_SEC = 300.0


class PollState(str, Enum):
    IDLE = "idle"
    POLLING = "polling"


@dataclass(frozen=True)
class FeedCache(Generic[T]):
    """Last-known-good result of one feed plus freshness bookkeeping."""

    data: Optional[T] = None
    updated_at: Optional[datetime] = None
    stale: bool = False
    error: Optional[str] = None
    last_attempt_at: Optional[datetime] = None
    success_count: int = 0
    failure_count: int = 0

    @property
    def has_data(self) -> bool:
        return self.updated_at is not None

    def to_status(self) -> dict[str, Any]:
        return {
            "has_data": self.has_data,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "last_attempt_at": self.last_attempt_at.isoformat() if self.last_attempt_at else None,
            "stale": self.stale,
            "error": self.error,
            "success_count": self.success_count,
            "failure_count": self.failure_count,
        }


def vehicles_fingerprint(vehicles: Iterable[VehiclePosition]) -> str:
    """Order-independent digest of the fields that make a visible change."""
    return "|".join(sorted(vehicle.fingerprint() for vehicle in vehicles))


FetchFn = Callable[[str], Awaitable[T]]
SuccessHook = Callable[[T], Any]


class FeedPoller(Generic[T]):
    """Polls one upstream feed and owns its cache.

    Each successful cycle replaces the cache and resets the backoff to the
    base interval. A failed cycle keeps the previous data, marks it stale and
    doubles the backoff up to ``max_backoff_sec``. Failures never propagate
    out of ``poll_once``.
    """

    def __init__(
        self,
        name: str,
        fetch: FetchFn[T],
        interval_sec: float,
        max_backoff_sec: float = DEFAULT_MAX_BACKOFF_SEC,
        on_success: Optional[SuccessHook[T]] = None,
    ) -> None:
        self.name = name
        self._fetch = fetch
        self.interval_sec = interval_sec
        self.max_backoff_sec = max_backoff_sec
        self._on_success = on_success

        self.state = PollState.IDLE
        self.current_backoff = interval_sec
        self.cache: FeedCache[T] = FeedCache()

    @property
    def is_busy(self) -> bool:
        return self.state is PollState.POLLING

    async def poll_once(self) -> bool:
        """Run one poll cycle.

        Returns:
            False if a cycle was already in flight and this call was a no-op,
            True otherwise (whether the cycle succeeded or failed).
        """
        if self.is_busy:
            logger.debug("Poll already in flight, skipping", feed_type=self.name)
            return False

        self.state = PollState.POLLING
        poll_id = str(uuid.uuid4())[:8]
        started_at = datetime.now(timezone.utc)
        self.cache = replace(self.cache, last_attempt_at=started_at)

        try:
            data = await self._fetch(poll_id)
        except (FetchError, DecodeError) as exc:
            self._record_failure(exc, poll_id)
        except Exception as exc:
            logger.error(
                "Unexpected poll error",
                feed_type=self.name,
                poll_id=poll_id,
                exc_info=exc,
            )
            self._record_failure(exc, poll_id)
        else:
            self._record_success(data, started_at, poll_id)
            await self._run_hook(data, poll_id)
        finally:
            self.state = PollState.IDLE

        return True

    def _record_success(self, data: T, started_at: datetime, poll_id: str) -> None:
        self.cache = FeedCache(
            data=data,
            updated_at=datetime.now(timezone.utc),
            stale=False,
            error=None,
            last_attempt_at=started_at,
            success_count=self.cache.success_count + 1,
            failure_count=self.cache.failure_count,
        )
        self.current_backoff = self.interval_sec
        logger.debug("Poll succeeded", feed_type=self.name, poll_id=poll_id)

    def _record_failure(self, exc: Exception, poll_id: str) -> None:
        self.cache = replace(
            self.cache,
            stale=True,
            error=str(exc),
            failure_count=self.cache.failure_count + 1,
        )
        self.current_backoff = min(self.current_backoff * 2, self.max_backoff_sec)
        logger.error(
            "Poll failed",
            feed_type=self.name,
            poll_id=poll_id,
            error=str(exc),
            next_poll_in_sec=self.current_backoff,
            failure_count=self.cache.failure_count,
        )

    async def _run_hook(self, data: T, poll_id: str) -> None:
        if self._on_success is None:
            return
        try:
            result = self._on_success(data)
            if inspect.isawaitable(result):
                await result
        except Exception as exc:
            logger.error(
                "Post-poll hook failed",
                feed_type=self.name,
                poll_id=poll_id,
                exc_info=exc,
            )

    async def run(self) -> None:
        """Poll forever, sleeping the current backoff between cycles."""
        while True:
            await self.poll_once()
            await asyncio.sleep(self.current_backoff)

    def get_status(self) -> dict[str, Any]:
        return {
            "feed_type": self.name,
            "state": self.state.value,
            "interval_sec": self.interval_sec,
            "current_backoff_sec": self.current_backoff,
            **self.cache.to_status(),
        }
