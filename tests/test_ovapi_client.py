"""Tests for the OVapi departures client."""

from typing import Any

import httpx
import pytest

from busline_api.services.errors import DecodeError, FetchError
from busline_api.services.ovapi.client import (
    OvapiClient,
    ScheduleDecodeError,
    ScheduleFetchError,
    parse_passes,
    round_half_up,
)

TPC = "55000150"


def _pass(
    journey: int,
    target: str,
    expected: str | None = None,
    **overrides: Any,
) -> dict[str, Any]:
    data = {
        "DataOwnerCode": "CXX",
        "LinePublicNumber": "80",
        "LinePlanningNumber": "M080",
        "TransportType": "BUS",
        "JourneyNumber": journey,
        "TargetDepartureTime": target,
        "ExpectedDepartureTime": expected or target,
        "TripStopStatus": "PLANNED",
        "DestinationName50": "Amsterdam Elandsgracht",
        "LineDirection": 1,
        "TimingPointName": "Haarlem, Centrum/Houtplein",
        "TimingPointCode": TPC,
        "Latitude": 52.379,
        "Longitude": 4.637,
    }
    data.update(overrides)
    return data


class TestRoundHalfUp:
    def test_ties_round_up(self) -> None:
        assert round_half_up(0.5) == 1
        assert round_half_up(2.5) == 3

    def test_negative_ties_round_towards_positive(self) -> None:
        assert round_half_up(-0.5) == 0
        assert round_half_up(-1.5) == -1

    def test_plain_values(self) -> None:
        assert round_half_up(1.49) == 1
        assert round_half_up(-1.51) == -2


class TestParsePasses:
    """Unit tests for parse_passes."""

    def test_filters_other_lines_and_operators(self) -> None:
        payload = {
            TPC: {
                "Passes": {
                    "keep": _pass(1, "2026-10-18T12:00:00"),
                    "night": _pass(2, "2026-10-18T12:05:00", LinePlanningNumber="N286"),
                    "other-op": _pass(3, "2026-10-18T12:10:00", DataOwnerCode="GVB"),
                    "other-line": _pass(4, "2026-10-18T12:15:00", LinePublicNumber="81"),
                    "tram": _pass(5, "2026-10-18T12:20:00", TransportType="TRAM"),
                    "no-owner": {"JourneyNumber": 6},
                }
            }
        }
        result = parse_passes(TPC, payload)

        assert [dep.journey_number for dep in result.departures] == [1]
        assert result.stop is not None
        assert result.stop.name == "Haarlem, Centrum/Houtplein"
        assert result.stop.tpc == TPC
        assert result.stop.latitude == pytest.approx(52.379)

    def test_passes_directly_under_tpc(self) -> None:
        payload = {TPC: {"a": _pass(7, "2026-10-18T12:00:00")}}
        result = parse_passes(TPC, payload)
        assert [dep.journey_number for dep in result.departures] == [7]

    def test_missing_tpc_is_empty(self) -> None:
        result = parse_passes("X", {TPC: {"a": _pass(1, "2026-10-18T12:00:00")}})
        assert result.stop is None
        assert result.departures == []
        assert result.timestamp

    def test_delay_rounding_and_flag(self) -> None:
        payload = {
            TPC: {
                "Passes": {
                    "half": _pass(1, "2026-10-18T12:00:00", "2026-10-18T12:00:30"),
                    "under": _pass(2, "2026-10-18T12:10:00", "2026-10-18T12:10:29"),
                    "early": _pass(3, "2026-10-18T12:20:00", "2026-10-18T12:18:00"),
                }
            }
        }
        by_journey = {dep.journey_number: dep for dep in parse_passes(TPC, payload).departures}

        assert by_journey[1].delay_minutes == 1
        assert by_journey[1].is_delayed is True
        assert by_journey[2].delay_minutes == 0
        assert by_journey[2].is_delayed is False
        assert by_journey[3].delay_minutes == -2
        assert by_journey[3].is_delayed is False

    def test_sorted_by_expected_time(self) -> None:
        payload = {
            TPC: {
                "Passes": {
                    "late": _pass(1, "2026-10-18T12:00:00", "2026-10-18T12:20:00"),
                    "early": _pass(2, "2026-10-18T12:10:00"),
                }
            }
        }
        result = parse_passes(TPC, payload)
        assert [dep.journey_number for dep in result.departures] == [2, 1]

    def test_arrival_time_fallback(self) -> None:
        raw = _pass(1, "")
        del raw["TargetDepartureTime"]
        del raw["ExpectedDepartureTime"]
        raw["TargetArrivalTime"] = "2026-10-18T12:00:00"
        raw["ExpectedArrivalTime"] = "2026-10-18T12:03:00"

        dep = parse_passes(TPC, {TPC: {"Passes": {"a": raw}}}).departures[0]
        assert dep.scheduled_departure == "2026-10-18T12:00:00"
        assert dep.expected_departure == "2026-10-18T12:03:00"
        assert dep.delay_minutes == 3

    def test_missing_expected_uses_scheduled(self) -> None:
        raw = _pass(1, "2026-10-18T12:00:00")
        del raw["ExpectedDepartureTime"]
        dep = parse_passes(TPC, {TPC: {"Passes": {"a": raw}}}).departures[0]
        assert dep.expected_departure == "2026-10-18T12:00:00"
        assert dep.delay_minutes == 0


def _client(handler: Any) -> OvapiClient:
    return OvapiClient(
        "http://v0.ovapi.nl/",
        user_agent="Bus80Tracker/1.0",
        transport=httpx.MockTransport(handler),
    )


class TestOvapiClient:
    """OvapiClient against a mocked transport."""

    @pytest.mark.asyncio
    async def test_fetch_departures(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200, json={TPC: {"Passes": {"a": _pass(1, "2026-10-18T12:00:00")}}}
            )

        result = await _client(handler).fetch_departures(TPC)

        assert len(result.departures) == 1
        assert str(seen[0].url) == f"http://v0.ovapi.nl/tpc/{TPC}"
        assert seen[0].headers["User-Agent"] == "Bus80Tracker/1.0"

    @pytest.mark.asyncio
    async def test_http_error_is_fetch_error(self) -> None:
        client = _client(lambda request: httpx.Response(503))
        with pytest.raises(ScheduleFetchError, match="503"):
            await client.fetch_departures(TPC)

    @pytest.mark.asyncio
    async def test_network_error_is_fetch_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(FetchError):
            await _client(handler).fetch_departures(TPC)

    @pytest.mark.asyncio
    async def test_invalid_json_is_decode_error(self) -> None:
        client = _client(lambda request: httpx.Response(200, content=b"<html>"))
        with pytest.raises(ScheduleDecodeError):
            await client.fetch_departures(TPC)

    @pytest.mark.asyncio
    async def test_non_object_body_is_decode_error(self) -> None:
        client = _client(lambda request: httpx.Response(200, json=[1, 2, 3]))
        with pytest.raises(DecodeError):
            await client.fetch_departures(TPC)
