"""On-disk form of the reference snapshot (route.json)."""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional

from busline_api.logging import get_logger
from busline_api.models.reference import (
    DISPLAY_DIRECTIONS,
    FeedVersion,
    ReferenceSnapshot,
    StopRecord,
)

logger = get_logger(__name__)


class SnapshotFormatError(Exception):
    """Raised when a persisted snapshot document cannot be interpreted."""


def snapshot_to_document(snapshot: ReferenceSnapshot) -> Dict[str, Any]:
    """Serialize a snapshot into the persisted JSON document shape."""
    return {
        "metadata": {
            "extractedAt": snapshot.extracted_at,
            "gtfsLastModified": snapshot.version.last_modified,
            "gtfsEtag": snapshot.version.etag,
        },
        "routeIds": sorted(snapshot.route_ids),
        "tripIds": sorted(snapshot.trip_ids),
        "shapes": {
            shape_id: [[lat, lon] for lat, lon in points]
            for shape_id, points in snapshot.shapes.items()
        },
        "tripShapeMap": dict(snapshot.trip_shapes),
        "tripDirectionMap": dict(snapshot.trip_directions),
        "stops": {
            "route": {
                f"direction{direction}": [
                    stop.to_dict() for stop in snapshot.stops_for_direction(direction)
                ]
                for direction in DISPLAY_DIRECTIONS
            }
        },
    }


def snapshot_from_document(doc: Dict[str, Any]) -> ReferenceSnapshot:
    """Build a snapshot from a persisted JSON document.

    Raises:
        SnapshotFormatError: If required keys are missing or malformed.
    """
    try:
        metadata = doc["metadata"]
        route_stops = doc.get("stops", {}).get("route", {})
        stops = {
            direction: tuple(
                StopRecord(
                    stop_id=str(s["stopId"]),
                    name=str(s["name"]),
                    latitude=float(s["latitude"]),
                    longitude=float(s["longitude"]),
                    sequence=int(s["sequence"]),
                )
                for s in route_stops.get(f"direction{direction}", [])
            )
            for direction in DISPLAY_DIRECTIONS
        }
        return ReferenceSnapshot(
            extracted_at=str(metadata.get("extractedAt", "")),
            version=FeedVersion(
                etag=str(metadata.get("gtfsEtag", "")),
                last_modified=str(metadata.get("gtfsLastModified", "")),
            ),
            route_ids=frozenset(doc["routeIds"]),
            trip_ids=frozenset(doc["tripIds"]),
            trip_directions={k: int(v) for k, v in doc.get("tripDirectionMap", {}).items()},
            trip_shapes=dict(doc.get("tripShapeMap", {})),
            shapes={
                shape_id: tuple((float(p[0]), float(p[1])) for p in points)
                for shape_id, points in doc.get("shapes", {}).items()
            },
            stops=stops,
        )
    except (KeyError, TypeError, ValueError, IndexError, AttributeError) as exc:
        msg = f"Invalid reference snapshot document: {exc}"
        raise SnapshotFormatError(msg) from exc


def write_snapshot(path: str | Path, snapshot: ReferenceSnapshot) -> None:
    """Write the snapshot document atomically (temp file, then rename)."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(snapshot_to_document(snapshot), fh, indent=2)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise

    logger.info(
        "Reference snapshot written",
        path=str(path),
        trip_count=len(snapshot.trip_ids),
        shape_count=len(snapshot.shapes),
    )


def read_snapshot(path: str | Path) -> Optional[ReferenceSnapshot]:
    """Load a persisted snapshot, or None if the file does not exist.

    Raises:
        SnapshotFormatError: If the file exists but is corrupt.
    """
    path = Path(path)
    if not path.exists():
        return None
    try:
        doc = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        msg = f"Corrupt reference snapshot at {path}"
        raise SnapshotFormatError(msg) from exc
    return snapshot_from_document(doc)
