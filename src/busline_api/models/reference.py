"""Static route topology: the reference snapshot and its parts."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Mapping, Optional, Tuple

Point = Tuple[float, float]

# GTFS encodes direction as 0/1; the line is displayed as direction 1/2.
GTFS_TO_DISPLAY_DIRECTION = {0: 1, 1: 2}
DISPLAY_DIRECTIONS = (1, 2)


def to_display_direction(direction_id: Optional[int]) -> Optional[int]:
    """Map a GTFS direction_id (0/1) to the display direction (1/2)."""
    if direction_id is None:
        return None
    return GTFS_TO_DISPLAY_DIRECTION.get(direction_id)


@dataclass(frozen=True)
class FeedVersion:
    """Upstream static dataset version token (from HTTP HEAD)."""

    etag: str = ""
    last_modified: str = ""


@dataclass(frozen=True)
class StopRecord:
    """One stop of a direction's ordered stop sequence."""

    stop_id: str
    name: str
    latitude: float
    longitude: float
    sequence: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stopId": self.stop_id,
            "name": self.name,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "sequence": self.sequence,
        }


@dataclass(frozen=True)
class ReferenceSnapshot:
    """Immutable route topology in force at a point in time.

    Never mutated after construction; a refresh builds a new snapshot and the
    store swaps its reference.
    """

    extracted_at: str
    version: FeedVersion
    route_ids: FrozenSet[str]
    trip_ids: FrozenSet[str]
    trip_directions: Mapping[str, int]
    trip_shapes: Mapping[str, str]
    shapes: Mapping[str, Tuple[Point, ...]]
    stops: Mapping[int, Tuple[StopRecord, ...]] = field(default_factory=dict)

    def is_known_route(self, route_id: str) -> bool:
        return route_id in self.route_ids

    def is_known_trip(self, trip_id: str) -> bool:
        return trip_id in self.trip_ids

    def direction_for_trip(self, trip_id: str) -> Optional[int]:
        """GTFS direction (0/1) of a trip, or None if the trip is unknown."""
        return self.trip_directions.get(trip_id)

    def stops_for_direction(self, direction: int) -> Tuple[StopRecord, ...]:
        return self.stops.get(direction, ())

    def primary_shapes(self) -> Dict[int, Tuple[Point, ...]]:
        """Longest shape per display direction, typically the full route."""
        shape_ids_by_dir: Dict[int, list[str]] = {
            direction: [] for direction in DISPLAY_DIRECTIONS
        }
        for trip_id, shape_id in self.trip_shapes.items():
            display = to_display_direction(self.trip_directions.get(trip_id, 0)) or 1
            if shape_id not in shape_ids_by_dir[display]:
                shape_ids_by_dir[display].append(shape_id)

        result: Dict[int, Tuple[Point, ...]] = {}
        for direction, shape_ids in shape_ids_by_dir.items():
            longest: Tuple[Point, ...] = ()
            for shape_id in shape_ids:
                shape = self.shapes.get(shape_id, ())
                if len(shape) > len(longest):
                    longest = shape
            result[direction] = longest
        return result
