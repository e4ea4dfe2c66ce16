"""Runs the feed pollers and the periodic reference version check."""

from __future__ import annotations

import asyncio
from contextlib import suppress
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, Iterable, List

from busline_api.logging import get_logger

if TYPE_CHECKING:
    from busline_api.services.polling.poller import FeedPoller
    from busline_api.services.polling.staleness import StalenessDetector

logger = get_logger(__name__)


class PollingScheduler:
    """Launches each poller as its own task, independent of the others.

    Usage:
        scheduler = PollingScheduler(pollers, detector, ...)
        await scheduler.start()   # launches background tasks
        await scheduler.stop()    # cancels background tasks
    """

    def __init__(
        self,
        pollers: Iterable[FeedPoller[Any]],
        detector: StalenessDetector,
        start_delay_sec: float = 5,
        version_check_interval_sec: float = 24 * 60 * 60,
    ) -> None:
        self.pollers: Dict[str, FeedPoller[Any]] = {poller.name: poller for poller in pollers}
        self._detector = detector
        self._start_delay = start_delay_sec
        self._version_check_interval = version_check_interval_sec
        self._tasks: List[asyncio.Task[None]] = []
        self._running = False
        self._started_at: datetime | None = None

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start every poller loop and the version check loop."""
        if self._running:
            logger.warning("Scheduler already running, ignoring start request")
            return

        self._running = True
        self._started_at = datetime.now(timezone.utc)
        for poller in self.pollers.values():
            self._tasks.append(
                asyncio.create_task(self._delayed_run(poller), name=f"poll-{poller.name}")
            )
        self._tasks.append(
            asyncio.create_task(self._version_check_loop(), name="reference-version-check")
        )
        logger.info(
            "Polling scheduler started",
            feeds=sorted(self.pollers),
            start_delay_sec=self._start_delay,
        )

    async def stop(self) -> None:
        """Cancel all background tasks and wait for them to finish."""
        if not self._running:
            return

        self._running = False
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            with suppress(asyncio.CancelledError):
                await task
        self._tasks = []
        logger.info("Polling scheduler stopped")

    async def _delayed_run(self, poller: FeedPoller[Any]) -> None:
        await asyncio.sleep(self._start_delay)
        await poller.run()

    async def _version_check_loop(self) -> None:
        while True:
            await asyncio.sleep(self._version_check_interval)
            await self._detector.check_version()

    async def run_once(self) -> Dict[str, bool]:
        """Poll every feed once, concurrently. Used by the admin endpoint."""
        names = list(self.pollers)
        results = await asyncio.gather(*(self.pollers[name].poll_once() for name in names))
        return dict(zip(names, results))

    def get_status(self) -> Dict[str, Any]:
        return {
            "running": self._running,
            "started_at": self._started_at.isoformat() if self._started_at else None,
            "feeds": {name: poller.get_status() for name, poller in self.pollers.items()},
            "staleness": self._detector.get_status(),
        }
