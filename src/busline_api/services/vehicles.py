"""Presentation of the vehicle cache and the route topology."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Sequence

from busline_api.models.realtime import VehiclePosition, unix_to_iso
from busline_api.models.reference import DISPLAY_DIRECTIONS, to_display_direction
from busline_api.services.live.events import VehiclesUpdated

if TYPE_CHECKING:
    from busline_api.models.reference import ReferenceSnapshot
    from busline_api.services.polling.poller import FeedPoller
    from busline_api.services.reference.store import ReferenceStore


def display_direction(
    vehicle: VehiclePosition, snapshot: Optional[ReferenceSnapshot]
) -> Optional[int]:
    """Display direction (1/2) from the feed, else from the trip's static direction."""
    raw = vehicle.direction_id
    if raw is None and snapshot is not None:
        raw = snapshot.direction_for_trip(vehicle.trip_id)
    return to_display_direction(raw)


def vehicle_to_dict(
    vehicle: VehiclePosition, snapshot: Optional[ReferenceSnapshot]
) -> Dict[str, Any]:
    return {
        "vehicleId": vehicle.vehicle_id,
        "tripId": vehicle.trip_id,
        "latitude": vehicle.latitude,
        "longitude": vehicle.longitude,
        "direction": display_direction(vehicle, snapshot),
        "delaySeconds": vehicle.delay_seconds,
        "currentStatus": vehicle.current_status,
        "stopId": vehicle.stop_id,
        "timestamp": unix_to_iso(vehicle.timestamp),
    }


def route_topology(
    snapshot: Optional[ReferenceSnapshot], direction_names: Mapping[int, str]
) -> Dict[str, Any]:
    """Stops and primary shape per direction; empty when no snapshot is loaded."""
    shapes = snapshot.primary_shapes() if snapshot is not None else {}
    route: Dict[str, Any] = {}
    for direction in DISPLAY_DIRECTIONS:
        stops = snapshot.stops_for_direction(direction) if snapshot is not None else ()
        route[f"direction{direction}"] = {
            "name": direction_names.get(direction, ""),
            "stops": [stop.to_dict() for stop in stops],
            "shape": [[lat, lon] for lat, lon in shapes.get(direction, ())],
        }
    return route


class VehicleService:
    """Builds vehicle and topology payloads from the vehicle poller's cache."""

    def __init__(
        self,
        poller: FeedPoller[List[VehiclePosition]],
        store: ReferenceStore,
        direction_names: Mapping[int, str],
    ) -> None:
        self._poller = poller
        self._store = store
        self._direction_names = dict(direction_names)

    def vehicles(self) -> Sequence[VehiclePosition]:
        return self._poller.cache.data or []

    @property
    def stale(self) -> bool:
        return self._poller.cache.stale

    def vehicle_dicts(
        self, vehicles: Optional[Sequence[VehiclePosition]] = None
    ) -> List[Dict[str, Any]]:
        snapshot = self._store.snapshot
        source = self.vehicles() if vehicles is None else vehicles
        return [vehicle_to_dict(vehicle, snapshot) for vehicle in source]

    def vehicles_event(
        self, vehicles: Optional[Sequence[VehiclePosition]] = None
    ) -> VehiclesUpdated:
        return VehiclesUpdated(vehicles=self.vehicle_dicts(vehicles), stale=self.stale)

    def snapshot_payload(self) -> Dict[str, Any]:
        """Vehicles plus route topology, as served to newly connected clients."""
        return {
            "vehicles": self.vehicle_dicts(),
            "route": route_topology(self._store.snapshot, self._direction_names),
            "stale": self.stale,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
