"""GTFS-RT normalizer: protobuf entities to line-filtered domain records."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Optional

from busline_api.logging import get_logger
from busline_api.models.realtime import (
    VEHICLE_STOP_STATUS,
    StopTimePrediction,
    TripStopPrediction,
    VehiclePosition,
)
from busline_api.services.gtfs_rt.ovapi_extension import vehicle_delay

if TYPE_CHECKING:
    from google.transit import gtfs_realtime_pb2  # type: ignore[import-untyped]

    from busline_api.models.reference import ReferenceSnapshot

logger = get_logger(__name__)


def _is_known(snapshot: Optional[ReferenceSnapshot], route_id: str, trip_id: str) -> bool:
    """True when the route or the trip belongs to the tracked line.

    Without a snapshot nothing is known, so every entity is filtered out.
    """
    if snapshot is None:
        return False
    return snapshot.is_known_route(route_id) or snapshot.is_known_trip(trip_id)


def _direction_id(trip: gtfs_realtime_pb2.TripDescriptor) -> Optional[int]:
    # 0 is a valid direction, so presence must be checked explicitly
    if trip.HasField("direction_id"):
        return int(trip.direction_id)
    return None


class GtfsRtNormalizer:
    """Normalizes decoded GTFS-RT entities into domain records for one line."""

    @staticmethod
    def vehicle_positions(
        feed: gtfs_realtime_pb2.FeedMessage,
        snapshot: Optional[ReferenceSnapshot],
    ) -> list[VehiclePosition]:
        """Extract the tracked line's vehicles from a VehiclePositions feed."""
        feed_ts = feed.header.timestamp or int(time.time())
        vehicles: list[VehiclePosition] = []

        for entity in feed.entity:
            if not entity.HasField("vehicle"):
                continue

            vp = entity.vehicle
            if not vp.HasField("trip") or not vp.HasField("position"):
                continue

            trip_id = vp.trip.trip_id
            route_id = vp.trip.route_id
            if not _is_known(snapshot, route_id, trip_id):
                continue

            vehicle_id = "unknown"
            if vp.HasField("vehicle"):
                vehicle_id = vp.vehicle.id or vp.vehicle.label or "unknown"

            delay = vehicle_delay(vp)

            vehicles.append(
                VehiclePosition(
                    vehicle_id=vehicle_id,
                    trip_id=trip_id,
                    route_id=route_id,
                    direction_id=_direction_id(vp.trip),
                    latitude=vp.position.latitude,
                    longitude=vp.position.longitude,
                    delay_seconds=delay if delay is not None else 0,
                    current_status=VEHICLE_STOP_STATUS.get(vp.current_status, "UNKNOWN"),
                    stop_id=vp.stop_id,
                    timestamp=int(vp.timestamp) if vp.timestamp else int(feed_ts),
                )
            )

        return vehicles

    @staticmethod
    def trip_updates(
        feed: gtfs_realtime_pb2.FeedMessage,
        snapshot: Optional[ReferenceSnapshot],
    ) -> list[TripStopPrediction]:
        """Extract the tracked line's trip updates from a TripUpdates feed."""
        trips: list[TripStopPrediction] = []

        for entity in feed.entity:
            if not entity.HasField("trip_update"):
                continue

            tu = entity.trip_update
            trip_id = tu.trip.trip_id
            route_id = tu.trip.route_id
            if not trip_id or not _is_known(snapshot, route_id, trip_id):
                continue

            updates: list[StopTimePrediction] = []
            for stu in tu.stop_time_update:
                if not stu.stop_id:
                    continue
                has_arrival = stu.HasField("arrival")
                has_departure = stu.HasField("departure")
                updates.append(
                    StopTimePrediction(
                        stop_id=stu.stop_id,
                        stop_sequence=stu.stop_sequence,
                        arrival_time=stu.arrival.time
                        if has_arrival and stu.arrival.time
                        else None,
                        arrival_delay=stu.arrival.delay if has_arrival else None,
                        departure_time=stu.departure.time
                        if has_departure and stu.departure.time
                        else None,
                        departure_delay=stu.departure.delay if has_departure else None,
                    )
                )

            trips.append(
                TripStopPrediction(
                    trip_id=trip_id,
                    route_id=route_id,
                    direction_id=_direction_id(tu.trip),
                    stop_time_updates=updates,
                )
            )

        return trips
