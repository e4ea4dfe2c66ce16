"""Derives the line's ReferenceSnapshot from a static GTFS archive."""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from busline_api.logging import get_logger
from busline_api.models.reference import (
    GTFS_TO_DISPLAY_DIRECTION,
    FeedVersion,
    Point,
    ReferenceSnapshot,
    StopRecord,
)
from busline_api.services.reference.reader import GtfsZipReader

logger = get_logger(__name__)

BUS_ROUTE_TYPE = "3"


class ExtractionError(Exception):
    """Raised when the archive does not contain the tracked line."""


def _int(value: str, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _float(value: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def extract_snapshot(
    source: bytes | str | Path,
    version: FeedVersion,
    *,
    operator_code: str,
    agency_name: str,
    line_public_number: str,
    extracted_at: Optional[str] = None,
) -> ReferenceSnapshot:
    """Build a snapshot for one bus line from a GTFS ZIP.

    Steps: locate the operator's agency, its bus routes with the public line
    number, their trips, the trips' shapes, one representative trip per
    direction (the one with most stop_times) and that trip's stop sequence.

    Raises:
        ExtractionError: If the agency or the line's routes are absent.
        MissingRequiredFileError / MissingColumnError: On malformed archives.
    """
    with GtfsZipReader(source) as reader:
        agency_id = _find_agency(reader, operator_code, agency_name)

        route_ids = [
            row["route_id"]
            for row in reader.rows("routes.txt")
            if row.get("agency_id") == agency_id
            and row.get("route_short_name") == line_public_number
            and row.get("route_type") == BUS_ROUTE_TYPE
        ]
        if not route_ids:
            msg = f"No bus routes for line {line_public_number} of agency {agency_id}"
            raise ExtractionError(msg)
        route_set = set(route_ids)

        trip_ids: List[str] = []
        trip_directions: Dict[str, int] = {}
        trip_shapes: Dict[str, str] = {}
        for row in reader.rows("trips.txt"):
            if row["route_id"] not in route_set:
                continue
            trip_id = row["trip_id"]
            trip_ids.append(trip_id)
            trip_directions[trip_id] = _int(row.get("direction_id", ""), 0)
            trip_shapes[trip_id] = row.get("shape_id", "")

        shape_ids = {shape_id for shape_id in trip_shapes.values() if shape_id}
        shapes = _extract_shapes(reader, shape_ids)

        trip_set = set(trip_ids)
        stop_counts: Dict[str, int] = defaultdict(int)
        for row in reader.rows("stop_times.txt"):
            if row["trip_id"] in trip_set:
                stop_counts[row["trip_id"]] += 1

        representative: Dict[int, str] = {}
        for trip_id in trip_ids:
            direction = trip_directions[trip_id]
            current = representative.get(direction)
            if current is None or stop_counts[trip_id] > stop_counts[current]:
                representative[direction] = trip_id

        sequences = _extract_stop_sequences(reader, representative)
        stop_details = _extract_stop_details(
            reader, {stop_id for seq in sequences.values() for stop_id, _ in seq}
        )

    stops: Dict[int, Tuple[StopRecord, ...]] = {}
    for gtfs_direction, display in GTFS_TO_DISPLAY_DIRECTION.items():
        records = []
        for stop_id, sequence in sequences.get(gtfs_direction, []):
            name, lat, lon = stop_details.get(stop_id, ("Unknown", 0.0, 0.0))
            records.append(
                StopRecord(
                    stop_id=stop_id,
                    name=name,
                    latitude=lat,
                    longitude=lon,
                    sequence=sequence,
                )
            )
        stops[display] = tuple(records)

    snapshot = ReferenceSnapshot(
        extracted_at=extracted_at or datetime.now(timezone.utc).isoformat(),
        version=version,
        route_ids=frozenset(route_ids),
        trip_ids=frozenset(trip_ids),
        trip_directions=trip_directions,
        trip_shapes=trip_shapes,
        shapes=shapes,
        stops=stops,
    )
    logger.info(
        "Reference snapshot extracted",
        route_ids=route_ids,
        trip_count=len(trip_ids),
        shape_count=len(shapes),
        stops_direction1=len(stops[1]),
        stops_direction2=len(stops[2]),
    )
    return snapshot


def _find_agency(reader: GtfsZipReader, operator_code: str, agency_name: str) -> str:
    needle = agency_name.lower()
    for row in reader.rows("agency.txt"):
        if row["agency_id"].upper() == operator_code.upper():
            return row["agency_id"]
        if needle and needle in row["agency_name"].lower():
            return row["agency_id"]
    msg = f"Agency {operator_code!r} not found in agency.txt"
    raise ExtractionError(msg)


def _extract_shapes(
    reader: GtfsZipReader, shape_ids: set[str]
) -> Dict[str, Tuple[Point, ...]]:
    points: Dict[str, List[Tuple[int, Point]]] = defaultdict(list)
    for row in reader.rows("shapes.txt"):
        shape_id = row["shape_id"]
        if shape_id not in shape_ids:
            continue
        points[shape_id].append(
            (
                _int(row["shape_pt_sequence"]),
                (_float(row["shape_pt_lat"]), _float(row["shape_pt_lon"])),
            )
        )
    return {
        shape_id: tuple(point for _, point in sorted(seq, key=lambda item: item[0]))
        for shape_id, seq in points.items()
    }


def _extract_stop_sequences(
    reader: GtfsZipReader, representative: Dict[int, str]
) -> Dict[int, List[Tuple[str, int]]]:
    direction_by_trip = {trip_id: direction for direction, trip_id in representative.items()}
    sequences: Dict[int, List[Tuple[str, int]]] = defaultdict(list)
    for row in reader.rows("stop_times.txt"):
        direction = direction_by_trip.get(row["trip_id"])
        if direction is None:
            continue
        sequences[direction].append((row["stop_id"], _int(row["stop_sequence"])))
    for seq in sequences.values():
        seq.sort(key=lambda item: item[1])
    return sequences


def _extract_stop_details(
    reader: GtfsZipReader, stop_ids: set[str]
) -> Dict[str, Tuple[str, float, float]]:
    details: Dict[str, Tuple[str, float, float]] = {}
    for row in reader.rows("stops.txt"):
        if row["stop_id"] in stop_ids:
            details[row["stop_id"]] = (
                row["stop_name"],
                _float(row["stop_lat"]),
                _float(row["stop_lon"]),
            )
    return details
