"""Tests for the empty-poll staleness detector."""

import asyncio
from datetime import datetime
from unittest.mock import AsyncMock, MagicMock
from zoneinfo import ZoneInfo

import httpx
import pytest

from busline_api.models.reference import FeedVersion
from busline_api.services.polling.staleness import StalenessDetector, in_operating_window
from busline_api.services.reference.fetcher import StaticFetchError

AMS = ZoneInfo("Europe/Amsterdam")
NOON = datetime(2026, 10, 18, 12, 0, tzinfo=AMS)
NIGHT = datetime(2026, 10, 18, 3, 0, tzinfo=AMS)


def _refresher() -> MagicMock:
    refresher = MagicMock()
    refresher.in_progress = False
    refresher.refresh = AsyncMock(return_value=True)
    refresher.check_for_update = AsyncMock(return_value=(False, FeedVersion('"v1"')))
    return refresher


class TestOperatingWindow:
    def test_window_wraps_midnight(self) -> None:
        assert in_operating_window(6, 6, 1)
        assert in_operating_window(23, 6, 1)
        assert in_operating_window(0, 6, 1)
        assert not in_operating_window(1, 6, 1)
        assert not in_operating_window(5, 6, 1)

    def test_plain_window(self) -> None:
        assert in_operating_window(10, 8, 20)
        assert not in_operating_window(20, 8, 20)


class TestStalenessDetector:
    """Unit tests for StalenessDetector."""

    @pytest.mark.asyncio
    async def test_threshold_triggers_refresh(self) -> None:
        refresher = _refresher()
        detector = StalenessDetector(refresher, threshold=3)

        assert [detector.observe(0, NOON) for _ in range(3)] == [False, False, True]
        assert detector.consecutive_empty == 0
        assert detector.last_trigger_reason == "staleness"

        await asyncio.sleep(0)
        await asyncio.sleep(0)
        refresher.refresh.assert_awaited_once()

    def test_vehicles_reset_counter(self) -> None:
        detector = StalenessDetector(_refresher(), threshold=3)
        detector.observe(0, NOON)
        detector.observe(0, NOON)
        detector.observe(4, NOON)
        assert detector.consecutive_empty == 0

    def test_empty_outside_window_ignored(self) -> None:
        refresher = _refresher()
        detector = StalenessDetector(refresher, threshold=1)
        assert detector.observe(0, NIGHT) is False
        assert detector.consecutive_empty == 0
        refresher.refresh.assert_not_called()

    @pytest.mark.asyncio
    async def test_trigger_dropped_while_refresh_running(self) -> None:
        refresher = _refresher()
        refresher.in_progress = True
        detector = StalenessDetector(refresher, threshold=1)

        assert detector.trigger_refresh("staleness") is None
        refresher.refresh.assert_not_called()

    @pytest.mark.asyncio
    async def test_only_one_triggered_task(self) -> None:
        refresher = _refresher()
        gate = asyncio.Event()

        async def slow_refresh(force: bool = False) -> bool:
            await gate.wait()
            return True

        refresher.refresh = AsyncMock(side_effect=slow_refresh)
        detector = StalenessDetector(refresher, threshold=1)

        first = detector.trigger_refresh("staleness")
        assert first is not None
        assert detector.refresh_in_flight
        assert detector.trigger_refresh("staleness") is None

        gate.set()
        assert await first is True
        assert detector.refresh_in_flight is False

    @pytest.mark.asyncio
    async def test_check_version_unchanged(self) -> None:
        refresher = _refresher()
        detector = StalenessDetector(refresher)
        assert await detector.check_version() is False
        refresher.refresh.assert_not_called()

    @pytest.mark.asyncio
    async def test_check_version_changed_triggers(self) -> None:
        refresher = _refresher()
        refresher.check_for_update = AsyncMock(return_value=(True, FeedVersion('"v2"')))
        detector = StalenessDetector(refresher)

        assert await detector.check_version() is True
        assert detector.last_trigger_reason == "version-check"
        await detector.cancel()

    @pytest.mark.asyncio
    async def test_check_version_fetch_error(self) -> None:
        refresher = _refresher()
        refresher.check_for_update = AsyncMock(side_effect=StaticFetchError("HEAD failed"))
        detector = StalenessDetector(refresher)
        assert await detector.check_version() is False

    @pytest.mark.asyncio
    async def test_check_version_unexpected_error_is_contained(self) -> None:
        refresher = _refresher()
        refresher.check_for_update = AsyncMock(side_effect=httpx.InvalidURL("bad url"))
        detector = StalenessDetector(refresher)

        assert await detector.check_version() is False
        refresher.refresh.assert_not_called()

    @pytest.mark.asyncio
    async def test_forced_trigger_passes_force(self) -> None:
        refresher = _refresher()
        detector = StalenessDetector(refresher)

        task = detector.trigger_refresh("cold-start", force=True)
        assert task is not None
        assert await task is True
        refresher.refresh.assert_awaited_once_with(force=True)

    @pytest.mark.asyncio
    async def test_cancel_stops_in_flight_refresh(self) -> None:
        refresher = _refresher()
        never = asyncio.Event()

        async def hang(force: bool = False) -> bool:
            await never.wait()
            return True

        refresher.refresh = AsyncMock(side_effect=hang)
        detector = StalenessDetector(refresher)
        task = detector.trigger_refresh("staleness")
        await asyncio.sleep(0)

        await detector.cancel()
        assert task is not None and task.cancelled()

    def test_status(self) -> None:
        status = StalenessDetector(_refresher(), threshold=5).get_status()
        assert status["threshold"] == 5
        assert status["refresh_in_flight"] is False
