"""GTFS ZIP reader with required-file and required-column validation."""

from __future__ import annotations

import csv
import io
import zipfile
from pathlib import Path
from typing import TYPE_CHECKING

from busline_api.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Iterator

logger = get_logger(__name__)

# Columns needed to derive the line's topology, per GTFS file
REQUIRED_COLUMNS: dict[str, set[str]] = {
    "agency.txt": {"agency_id", "agency_name"},
    "routes.txt": {"route_id", "agency_id", "route_short_name", "route_type"},
    "trips.txt": {"route_id", "trip_id", "direction_id", "shape_id"},
    "shapes.txt": {"shape_id", "shape_pt_lat", "shape_pt_lon", "shape_pt_sequence"},
    "stop_times.txt": {"trip_id", "stop_id", "stop_sequence"},
    "stops.txt": {"stop_id", "stop_name", "stop_lat", "stop_lon"},
}

REQUIRED_FILES = set(REQUIRED_COLUMNS)


class MissingRequiredFileError(Exception):
    """Raised when a required GTFS file is missing from the ZIP."""


class MissingColumnError(Exception):
    """Raised when a required CSV column is missing."""


class GtfsZipReader:
    """Opens a GTFS ZIP archive and streams its CSV files as dict rows."""

    def __init__(self, source: bytes | str | Path) -> None:
        """Open the archive from raw bytes or a filesystem path.

        Raises:
            zipfile.BadZipFile: If the source is not a valid ZIP.
            MissingRequiredFileError: If required files are missing.
        """
        if isinstance(source, bytes):
            self._zip = zipfile.ZipFile(io.BytesIO(source))
        else:
            self._zip = zipfile.ZipFile(source)
        self._validate_required_files()

    def _validate_required_files(self) -> None:
        names = set(self._zip.namelist())
        missing = REQUIRED_FILES - names
        if missing:
            self._zip.close()
            msg = f"Missing required GTFS files: {sorted(missing)}"
            raise MissingRequiredFileError(msg)

    def rows(self, filename: str) -> Iterator[dict[str, str]]:
        """Stream one CSV file, yielding a dict per row with stripped values.

        Raises:
            MissingColumnError: If required columns are missing.
        """
        with self._zip.open(filename) as binary_stream:
            text_io = io.TextIOWrapper(binary_stream, encoding="utf-8-sig", newline="")
            csv_reader = csv.DictReader(text_io)

            if csv_reader.fieldnames is None:
                msg = f"Empty CSV file: {filename}"
                raise MissingColumnError(msg)

            actual_columns = {name.strip() for name in csv_reader.fieldnames}
            missing = REQUIRED_COLUMNS.get(filename, set()) - actual_columns
            if missing:
                msg = f"Missing required columns in {filename}: {sorted(missing)}"
                raise MissingColumnError(msg)

            logger.debug("Parsing GTFS file", filename=filename)
            for row in csv_reader:
                yield {
                    (key or "").strip(): (value or "").strip() for key, value in row.items()
                }

    def close(self) -> None:
        self._zip.close()

    def __enter__(self) -> GtfsZipReader:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()
