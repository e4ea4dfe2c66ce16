"""Tests for GTFS-RT feed fetcher."""

from unittest.mock import AsyncMock, patch

import httpx
import pytest

from busline_api.services.errors import FetchError
from busline_api.services.gtfs_rt.fetcher import FeedFetchError, GtfsRtFetcher

from .fixtures.gtfs_rt_fixture import build_vehicle_position_feed

FEED_URL = "https://gtfs.ovapi.nl/nl/vehiclePositions.pb"


def _mock_client(mock_client: AsyncMock, get: AsyncMock) -> AsyncMock:
    instance = AsyncMock()
    instance.get = get
    instance.__aenter__ = AsyncMock(return_value=instance)
    instance.__aexit__ = AsyncMock(return_value=False)
    mock_client.return_value = instance
    return instance


def _server_error() -> AsyncMock:
    response = AsyncMock()
    response.raise_for_status = AsyncMock(
        side_effect=httpx.HTTPStatusError(
            "Server Error",
            request=httpx.Request("GET", FEED_URL),
            response=httpx.Response(503),
        )
    )
    return response


class TestGtfsRtFetcher:
    """Unit tests for GtfsRtFetcher."""

    @pytest.mark.asyncio
    async def test_fetch_success(self) -> None:
        expected_data = build_vehicle_position_feed()
        fetcher = GtfsRtFetcher(timeout_sec=5)

        mock_response = AsyncMock()
        mock_response.content = expected_data
        mock_response.raise_for_status = lambda: None

        with patch("busline_api.services.gtfs_rt.fetcher.httpx.AsyncClient") as mock_client:
            _mock_client(mock_client, AsyncMock(return_value=mock_response))
            data, feed_hash = await fetcher.fetch(FEED_URL, "vehicle_positions", "poll-1")

        assert data == expected_data
        assert len(feed_hash) == 64  # sha256 hex

    @pytest.mark.asyncio
    async def test_sends_user_agent(self) -> None:
        fetcher = GtfsRtFetcher(user_agent="Bus80Tracker/1.0")

        mock_response = AsyncMock()
        mock_response.content = build_vehicle_position_feed()
        mock_response.raise_for_status = lambda: None

        with patch("busline_api.services.gtfs_rt.fetcher.httpx.AsyncClient") as mock_client:
            _mock_client(mock_client, AsyncMock(return_value=mock_response))
            await fetcher.fetch(FEED_URL, "vehicle_positions", "poll-1")

        headers = mock_client.call_args.kwargs["headers"]
        assert headers["User-Agent"] == "Bus80Tracker/1.0"
        assert headers["Accept-Encoding"] == "gzip"

    @pytest.mark.asyncio
    async def test_empty_response_raises(self) -> None:
        fetcher = GtfsRtFetcher(timeout_sec=5)

        mock_response = AsyncMock()
        mock_response.content = b""
        mock_response.raise_for_status = lambda: None

        with patch("busline_api.services.gtfs_rt.fetcher.httpx.AsyncClient") as mock_client:
            _mock_client(mock_client, AsyncMock(return_value=mock_response))
            with pytest.raises(FeedFetchError):
                await fetcher.fetch(FEED_URL, "vehicle_positions", "poll-1")

    @pytest.mark.asyncio
    async def test_default_is_single_attempt(self) -> None:
        fetcher = GtfsRtFetcher(timeout_sec=5)

        with patch("busline_api.services.gtfs_rt.fetcher.httpx.AsyncClient") as mock_client:
            instance = _mock_client(mock_client, AsyncMock(return_value=_server_error()))
            with pytest.raises(FeedFetchError, match="after 1 attempts"):
                await fetcher.fetch(FEED_URL, "vehicle_positions", "poll-1")

        assert instance.get.await_count == 1

    @pytest.mark.asyncio
    async def test_network_error_is_fetch_error(self) -> None:
        fetcher = GtfsRtFetcher(timeout_sec=5, max_retries=2, backoff_base=0.01)

        with patch("busline_api.services.gtfs_rt.fetcher.httpx.AsyncClient") as mock_client:
            _mock_client(
                mock_client,
                AsyncMock(
                    side_effect=httpx.RequestError(
                        "Connection refused",
                        request=httpx.Request("GET", FEED_URL),
                    )
                ),
            )
            with pytest.raises(FetchError, match="Failed to fetch"):
                await fetcher.fetch(FEED_URL, "vehicle_positions", "poll-1")

    @pytest.mark.asyncio
    async def test_retry_then_success(self) -> None:
        expected_data = build_vehicle_position_feed()
        fetcher = GtfsRtFetcher(timeout_sec=5, max_retries=3, backoff_base=0.01)

        ok_response = AsyncMock()
        ok_response.content = expected_data
        ok_response.raise_for_status = lambda: None

        with patch("busline_api.services.gtfs_rt.fetcher.httpx.AsyncClient") as mock_client:
            _mock_client(mock_client, AsyncMock(side_effect=[_server_error(), ok_response]))
            data, _ = await fetcher.fetch(FEED_URL, "vehicle_positions", "poll-1")

        assert data == expected_data
