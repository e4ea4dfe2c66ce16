"""Detects upstream identifier rotation from runs of empty vehicle polls."""

from __future__ import annotations

import asyncio
from contextlib import suppress
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional
from zoneinfo import ZoneInfo

from busline_api.logging import get_logger
from busline_api.services.errors import FetchError

if TYPE_CHECKING:
    from busline_api.services.reference.refresher import ReferenceRefresher

logger = get_logger(__name__)


def in_operating_window(hour: int, start_hour: int, end_hour: int) -> bool:
    """True if ``hour`` falls inside [start_hour, end_hour), wrapping midnight."""
    if start_hour <= end_hour:
        return start_hour <= hour < end_hour
    return hour >= start_hour or hour < end_hour


class StalenessDetector:
    """Counts consecutive empty vehicle polls during operating hours.

    When the static reference data goes out of date, every realtime entity
    fails the known-trip filter and polls come back empty. Reaching the
    threshold inside the operating window triggers a reference refresh.
    Outside the window an empty poll is expected and ignored.
    """

    def __init__(
        self,
        refresher: ReferenceRefresher,
        threshold: int = 5,
        operating_start_hour: int = 6,
        operating_end_hour: int = 1,
        timezone_name: str = "Europe/Amsterdam",
    ) -> None:
        self._refresher = refresher
        self.threshold = threshold
        self.operating_start_hour = operating_start_hour
        self.operating_end_hour = operating_end_hour
        self._zone = ZoneInfo(timezone_name)
        self.consecutive_empty = 0
        self._task: Optional[asyncio.Task[bool]] = None
        self.last_trigger_reason: Optional[str] = None
        self.last_triggered_at: Optional[datetime] = None

    def is_operating_hours(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now(timezone.utc)
        local_hour = now.astimezone(self._zone).hour
        return in_operating_window(local_hour, self.operating_start_hour, self.operating_end_hour)

    @property
    def refresh_in_flight(self) -> bool:
        task_running = self._task is not None and not self._task.done()
        return task_running or self._refresher.in_progress

    def observe(self, vehicle_count: int, now: Optional[datetime] = None) -> bool:
        """Record one successful vehicle poll.

        Returns:
            True if this observation triggered a refresh.
        """
        if vehicle_count > 0:
            self.consecutive_empty = 0
            return False
        if not self.is_operating_hours(now):
            return False

        self.consecutive_empty += 1
        logger.info(
            "Empty vehicle poll during operating hours",
            consecutive_empty=self.consecutive_empty,
            threshold=self.threshold,
        )
        if self.consecutive_empty < self.threshold:
            return False

        self.consecutive_empty = 0
        self.trigger_refresh("staleness")
        return True

    def trigger_refresh(
        self, reason: str, force: bool = False
    ) -> Optional[asyncio.Task[bool]]:
        """Start a background refresh unless one is already running."""
        if self.refresh_in_flight:
            logger.info("Reference refresh already running, trigger dropped", reason=reason)
            return None

        logger.info("Triggering reference refresh", reason=reason)
        self.last_trigger_reason = reason
        self.last_triggered_at = datetime.now(timezone.utc)
        self._task = asyncio.create_task(self._run_refresh(reason, force))
        return self._task

    async def _run_refresh(self, reason: str, force: bool) -> bool:
        updated = await self._refresher.refresh(force=force)
        logger.info("Reference refresh finished", reason=reason, updated=updated)
        return updated

    async def check_version(self) -> bool:
        """Proactive check: trigger a refresh when the upstream version changed.

        Returns:
            True if a refresh was triggered.
        """
        try:
            changed, version = await self._refresher.check_for_update()
        except FetchError as exc:
            logger.error("Reference version check failed", error=str(exc))
            return False
        except Exception as exc:
            logger.error("Unexpected reference version check error", exc_info=exc)
            return False

        if not changed:
            logger.info("Reference data unchanged", etag=version.etag)
            return False
        return self.trigger_refresh("version-check") is not None

    async def cancel(self) -> None:
        """Cancel an in-flight refresh task, if any."""
        task = self._task
        if task is not None and not task.done():
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task

    def get_status(self) -> dict[str, object]:
        return {
            "consecutive_empty": self.consecutive_empty,
            "threshold": self.threshold,
            "refresh_in_flight": self.refresh_in_flight,
            "last_trigger_reason": self.last_trigger_reason,
            "last_triggered_at": (
                self.last_triggered_at.isoformat() if self.last_triggered_at else None
            ),
        }
