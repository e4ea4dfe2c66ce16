"""Tests for the HTTP endpoints."""

import time
from typing import Any

import pytest
from httpx import AsyncClient

from busline_api.models.departures import DepartureResult, ScheduledDeparture, StopInfo
from busline_api.models.realtime import StopTimePrediction, TripStopPrediction, VehiclePosition
from busline_api.runtime import Runtime
from busline_api.services.gtfs_rt.fetcher import FeedFetchError
from busline_api.services.ovapi.client import ScheduleFetchError
from busline_api.services.reconciliation.engine import to_local_time_string

from .fixtures.gtfs_fixture import TEST_TPC

STOP = StopInfo(name="Haarlem, Centrum/Houtplein", tpc=TEST_TPC, latitude=52.379, longitude=4.637)


def _departure(journey: int, scheduled: str, direction: int = 1) -> ScheduledDeparture:
    return ScheduledDeparture(
        journey_number=journey,
        scheduled_departure=scheduled,
        expected_departure=scheduled,
        delay_minutes=0,
        status="PLANNED",
        is_delayed=False,
        destination="Amsterdam Elandsgracht",
        line_direction=direction,
    )


def _install_upstreams(
    runtime: Runtime,
    monkeypatch: pytest.MonkeyPatch,
    departures: list[ScheduledDeparture],
    trips: list[TripStopPrediction] | None = None,
    vehicles: list[VehiclePosition] | None = None,
) -> list[str]:
    """Patch the upstream clients; returns the list of TPCs fetched from OVapi."""
    fetched: list[str] = []

    async def fetch_departures(tpc: str) -> DepartureResult:
        fetched.append(tpc)
        return DepartureResult(stop=STOP, departures=list(departures), timestamp="now")

    async def fetch_trip_updates(poll_id: str | None = None) -> list[TripStopPrediction]:
        return list(trips or [])

    async def fetch_vehicle_positions(poll_id: str | None = None) -> list[VehiclePosition]:
        return list(vehicles or [])

    monkeypatch.setattr(runtime.ovapi, "fetch_departures", fetch_departures)
    monkeypatch.setattr(runtime.realtime, "fetch_trip_updates", fetch_trip_updates)
    monkeypatch.setattr(runtime.realtime, "fetch_vehicle_positions", fetch_vehicle_positions)
    return fetched


class TestDeparturesApi:
    """GET /api/departures"""

    @pytest.mark.asyncio
    async def test_cached_departures_merged_with_realtime(
        self, client: AsyncClient, runtime: Runtime, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        arrival = int(time.time()) + 900
        scheduled = to_local_time_string(arrival - 120)
        trips = [
            TripStopPrediction(
                trip_id="t-east-long",
                route_id="r80",
                direction_id=0,
                stop_time_updates=[
                    StopTimePrediction(
                        stop_id="stop-haarlem",
                        stop_sequence=2,
                        arrival_time=arrival,
                        arrival_delay=120,
                    )
                ],
            )
        ]
        fetched = _install_upstreams(
            runtime, monkeypatch, [_departure(8001, scheduled)], trips=trips
        )
        await runtime.scheduler.run_once()
        fetched.clear()

        response = await client.get("/api/departures", params={"walkTime": 5})

        assert response.status_code == 200
        data = response.json()
        assert fetched == []  # served from the cache
        assert data["stop"]["name"] == "Haarlem, Centrum/Houtplein"
        assert data["direction"] == 1
        assert data["walkTimeMinutes"] == 5
        assert data["stale"] is False
        dep = data["departures"][0]
        assert dep["journeyNumber"] == 8001
        assert dep["source"] == "realtime"
        assert dep["delayMinutes"] == 2
        assert dep["isDelayed"] is True
        assert dep["expectedDeparture"] == to_local_time_string(arrival)
        assert dep["leaveBy"] is not None

    @pytest.mark.asyncio
    async def test_failing_trip_updates_mark_board_stale(
        self, client: AsyncClient, runtime: Runtime, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        _install_upstreams(runtime, monkeypatch, [_departure(8001, "2026-10-18T12:00:00")])
        await runtime.scheduler.run_once()
        assert (await client.get("/api/departures")).json()["stale"] is False

        async def failing(poll_id: str | None = None) -> list[TripStopPrediction]:
            raise FeedFetchError("trip updates returned 503")

        monkeypatch.setattr(runtime.realtime, "fetch_trip_updates", failing)
        await runtime.trip_updates_poller.poll_once()

        data = (await client.get("/api/departures")).json()
        assert data["stale"] is True
        assert [dep["journeyNumber"] for dep in data["departures"]] == [8001]

    @pytest.mark.asyncio
    async def test_uncached_tpc_fetched_directly(
        self, client: AsyncClient, runtime: Runtime, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        fetched = _install_upstreams(
            runtime, monkeypatch, [_departure(9001, "2026-10-18T12:00:00", direction=2)]
        )

        response = await client.get(
            "/api/departures", params={"tpc": "55000120", "direction": 2}
        )

        assert response.status_code == 200
        assert fetched == ["55000120"]
        data = response.json()
        assert [dep["source"] for dep in data["departures"]] == ["scheduled"]
        assert data["departures"][0]["leaveBy"] is None

    @pytest.mark.asyncio
    async def test_upstream_failure_is_502(
        self, client: AsyncClient, runtime: Runtime, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        async def failing(tpc: str) -> DepartureResult:
            raise ScheduleFetchError("OVapi returned 503")

        monkeypatch.setattr(runtime.ovapi, "fetch_departures", failing)

        response = await client.get("/api/departures", params={"tpc": "57003574"})

        assert response.status_code == 502
        assert response.json()["detail"] == "Failed to fetch departures for TPC 57003574"

    @pytest.mark.asyncio
    async def test_empty_board_uses_default_destination(
        self, client: AsyncClient, runtime: Runtime, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        _install_upstreams(runtime, monkeypatch, [])
        response = await client.get("/api/departures", params={"direction": 2})

        data = response.json()
        assert data["departures"] == []
        assert data["destination"] == runtime.settings.direction2_destination

    @pytest.mark.asyncio
    async def test_invalid_direction_rejected(self, client: AsyncClient) -> None:
        response = await client.get("/api/departures", params={"direction": 3})
        assert response.status_code == 422


class TestVehiclesApi:
    """GET /api/vehicles"""

    @pytest.mark.asyncio
    async def test_vehicles_with_topology(
        self, client: AsyncClient, runtime: Runtime, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        vehicle = VehiclePosition(
            vehicle_id="CXX:7",
            trip_id="t-east-long",
            route_id="r80",
            direction_id=0,
            latitude=52.38,
            longitude=4.64,
            delay_seconds=45,
            current_status="STOPPED_AT",
            stop_id="stop-haarlem",
            timestamp=1700000000,
        )
        _install_upstreams(runtime, monkeypatch, [], vehicles=[vehicle])
        await runtime.vehicles_poller.poll_once()

        response = await client.get("/api/vehicles")

        assert response.status_code == 200
        data: dict[str, Any] = response.json()
        assert data["stale"] is False
        assert data["vehicles"] == [
            {
                "vehicleId": "CXX:7",
                "tripId": "t-east-long",
                "latitude": 52.38,
                "longitude": 4.64,
                "direction": 1,
                "delaySeconds": 45,
                "currentStatus": "STOPPED_AT",
                "stopId": "stop-haarlem",
                "timestamp": "2023-11-14T22:13:20Z",
            }
        ]
        direction1 = data["route"]["direction1"]
        assert direction1["name"] == runtime.settings.direction1_name
        assert [stop["stopId"] for stop in direction1["stops"]] == [
            "stop-zandvoort",
            "stop-haarlem",
            "stop-amsterdam",
        ]
        assert len(direction1["shape"]) == 3

    @pytest.mark.asyncio
    async def test_no_vehicles_yet(self, client: AsyncClient) -> None:
        response = await client.get("/api/vehicles")
        assert response.status_code == 200
        assert response.json()["vehicles"] == []


class TestMetaApi:
    @pytest.mark.asyncio
    async def test_last_ingest(
        self, client: AsyncClient, runtime: Runtime, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        _install_upstreams(runtime, monkeypatch, [])
        await runtime.vehicles_poller.poll_once()

        response = await client.get("/meta/last-ingest")

        assert response.status_code == 200
        data = response.json()
        feeds = {feed["feed_type"]: feed for feed in data["feeds"]}
        assert feeds["vehicle_positions"]["status"] == "ok"
        assert feeds["vehicle_positions"]["is_fresh"] is True
        assert feeds["trip_updates"]["status"] == "pending"
        assert data["reference_loaded"] is True
        assert data["reference_extracted_at"] == "2026-10-18T04:00:00+00:00"


class TestAdminApi:
    @pytest.mark.asyncio
    async def test_reference_status(self, client: AsyncClient) -> None:
        response = await client.get("/admin/reference/status")

        assert response.status_code == 200
        data = response.json()
        assert data["loaded"] is True
        assert data["route_ids"] == ["r80"]
        assert data["trip_count"] == 3
        assert data["in_progress"] is False

    @pytest.mark.asyncio
    async def test_refresh_conflict_while_running(
        self, client: AsyncClient, runtime: Runtime, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(
            type(runtime.refresher), "in_progress", property(lambda self: True)
        )
        response = await client.post("/admin/reference/refresh")
        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_refresh(
        self, client: AsyncClient, runtime: Runtime, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        calls: list[bool] = []

        async def refresh(force: bool = False) -> bool:
            calls.append(force)
            return False

        monkeypatch.setattr(runtime.refresher, "refresh", refresh)
        response = await client.post("/admin/reference/refresh", params={"force": "true"})

        assert response.status_code == 200
        assert response.json()["updated"] is False
        assert calls == [True]

    @pytest.mark.asyncio
    async def test_polling_run_once_and_status(
        self, client: AsyncClient, runtime: Runtime, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        _install_upstreams(runtime, monkeypatch, [])

        response = await client.post("/admin/polling/run-once")
        assert response.status_code == 200
        assert response.json() == {
            "vehicle_positions": True,
            "trip_updates": True,
            "departures": True,
        }

        status = (await client.get("/admin/polling/status")).json()
        assert status["running"] is False
        assert status["feeds"]["departures"]["success_count"] == 1
        assert status["staleness"]["consecutive_empty"] in (0, 1)

    @pytest.mark.asyncio
    async def test_polling_start_stop(
        self, client: AsyncClient, runtime: Runtime, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        _install_upstreams(runtime, monkeypatch, [])

        started = (await client.post("/admin/polling/start")).json()
        stopped = (await client.post("/admin/polling/stop")).json()

        assert started["running"] is True
        assert stopped["running"] is False
