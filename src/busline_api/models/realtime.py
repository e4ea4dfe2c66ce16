"""Realtime records decoded from the GTFS-RT feeds."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

VEHICLE_STOP_STATUS = {
    0: "INCOMING_AT",
    1: "STOPPED_AT",
    2: "IN_TRANSIT_TO",
}


def unix_to_iso(unix_ts: int) -> str:
    """Render integer unix seconds as an ISO-8601 UTC string."""
    return datetime.fromtimestamp(unix_ts, tz=timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class VehiclePosition:
    """One vehicle's position from a single poll cycle."""

    vehicle_id: str
    trip_id: str
    route_id: str
    direction_id: Optional[int]
    latitude: float
    longitude: float
    delay_seconds: int
    current_status: str
    stop_id: str
    timestamp: int

    def fingerprint(self) -> str:
        return f"{self.vehicle_id}:{self.latitude}:{self.longitude}:{self.delay_seconds}"


@dataclass(frozen=True)
class StopTimePrediction:
    """Predicted arrival/departure at one stop of a trip."""

    stop_id: str
    stop_sequence: int
    arrival_time: Optional[int] = None
    arrival_delay: Optional[int] = None
    departure_time: Optional[int] = None
    departure_delay: Optional[int] = None

    @property
    def predicted_time(self) -> Optional[int]:
        """Arrival time, falling back to departure time."""
        if self.arrival_time is not None:
            return self.arrival_time
        return self.departure_time

    @property
    def delay(self) -> int:
        return self.arrival_delay or self.departure_delay or 0


@dataclass(frozen=True)
class TripStopPrediction:
    """All stop-time predictions of one trip."""

    trip_id: str
    route_id: str
    direction_id: Optional[int]
    stop_time_updates: List[StopTimePrediction] = field(default_factory=list)


@dataclass(frozen=True)
class RealtimeArrival:
    """A trip's predicted arrival at one stop, with the derived departed flag."""

    trip_id: str
    stop_id: str
    arrival_time: int
    delay: int
    departed: bool
