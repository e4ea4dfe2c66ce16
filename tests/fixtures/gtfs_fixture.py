"""GTFS test fixture builder - creates in-memory ZIP files for testing."""

from __future__ import annotations

import io
import zipfile

from busline_api.models.reference import FeedVersion, ReferenceSnapshot, StopRecord

# Haarlem, Centrum/Houtplein in direction 1; resolves to "stop-haarlem"
TEST_TPC = "55000150"

# Minimal GTFS data around line 80: the tracked bus route plus look-alikes
# that must be filtered out (other agency, other line, non-bus route type).
AGENCY_TXT = """\
agency_id,agency_name,agency_url,agency_timezone
CXX,Connexxion,http://www.connexxion.nl,Europe/Amsterdam
GVB,GVB,http://www.gvb.nl,Europe/Amsterdam
"""

ROUTES_TXT = """\
route_id,agency_id,route_short_name,route_long_name,route_type
r80,CXX,80,Zandvoort - Haarlem - Amsterdam,3
r80t,CXX,80,Ferry 80,4
g80,GVB,80,Other operator 80,3
r81,CXX,81,Other line,3
"""

TRIPS_TXT = """\
route_id,service_id,trip_id,trip_headsign,direction_id,shape_id
r80,WD,t-east-long,Amsterdam,0,s-east
r80,WD,t-east-short,Haarlem,0,s-east-short
r80,WD,t-west,Zandvoort,1,s-west
r81,WD,t-other,Elsewhere,0,s-other
"""

SHAPES_TXT = """\
shape_id,shape_pt_lat,shape_pt_lon,shape_pt_sequence
s-east,52.3800,4.6500,2
s-east,52.3700,4.5300,1
s-east,52.3700,4.8800,3
s-east-short,52.3700,4.5300,1
s-east-short,52.3800,4.6500,2
s-west,52.3700,4.8800,1
s-west,52.3700,4.5300,2
s-other,52.0000,4.0000,1
"""

STOP_TIMES_TXT = """\
trip_id,arrival_time,departure_time,stop_id,stop_sequence
t-east-long,06:10:00,06:10:00,stop-haarlem,2
t-east-long,06:00:00,06:00:00,stop-zandvoort,1
t-east-long,06:30:00,06:30:00,stop-amsterdam,3
t-east-short,07:00:00,07:00:00,stop-zandvoort,1
t-east-short,07:10:00,07:10:00,stop-haarlem,2
t-west,08:00:00,08:00:00,stop-amsterdam,1
t-west,08:20:00,08:20:00,stop-haarlem,2
t-west,08:30:00,08:30:00,stop-ghost,3
t-other,09:00:00,09:00:00,stop-elsewhere,1
"""

STOPS_TXT = """\
stop_id,stop_name,stop_lat,stop_lon
stop-zandvoort,"Zandvoort, Centrum",52.3740,4.5330
stop-haarlem,"Haarlem, Centrum/Houtplein",52.3790,4.6370
stop-amsterdam,"Amsterdam, Elandsgracht",52.3680,4.8810
stop-elsewhere,Elsewhere,52.0000,4.0000
"""


def build_gtfs_zip(
    agency: str = AGENCY_TXT,
    routes: str = ROUTES_TXT,
    trips: str = TRIPS_TXT,
    shapes: str = SHAPES_TXT,
    stop_times: str = STOP_TIMES_TXT,
    stops: str = STOPS_TXT,
    exclude_files: set[str] | None = None,
) -> bytes:
    """Build an in-memory GTFS ZIP file.

    Args:
        exclude_files: Files to leave out (e.g. {"shapes.txt"}).

    Returns:
        bytes of the ZIP file.
    """
    buf = io.BytesIO()
    exclude = exclude_files or set()
    files = {
        "agency.txt": agency,
        "routes.txt": routes,
        "trips.txt": trips,
        "shapes.txt": shapes,
        "stop_times.txt": stop_times,
        "stops.txt": stops,
    }

    with zipfile.ZipFile(buf, "w", zipfile.ZIP_DEFLATED) as zf:
        for name, content in files.items():
            if name not in exclude:
                zf.writestr(name, content)

    return buf.getvalue()


def build_snapshot(
    extracted_at: str = "2026-10-18T04:00:00+00:00",
    etag: str = '"v1"',
) -> ReferenceSnapshot:
    """Snapshot equivalent to what the extractor derives from build_gtfs_zip()."""
    return ReferenceSnapshot(
        extracted_at=extracted_at,
        version=FeedVersion(etag=etag, last_modified="Sat, 17 Oct 2026 22:00:00 GMT"),
        route_ids=frozenset({"r80"}),
        trip_ids=frozenset({"t-east-long", "t-east-short", "t-west"}),
        trip_directions={"t-east-long": 0, "t-east-short": 0, "t-west": 1},
        trip_shapes={"t-east-long": "s-east", "t-east-short": "s-east-short", "t-west": "s-west"},
        shapes={
            "s-east": ((52.37, 4.53), (52.38, 4.65), (52.37, 4.88)),
            "s-east-short": ((52.37, 4.53), (52.38, 4.65)),
            "s-west": ((52.37, 4.88), (52.37, 4.53)),
        },
        stops={
            1: (
                StopRecord("stop-zandvoort", "Zandvoort, Centrum", 52.374, 4.533, 1),
                StopRecord("stop-haarlem", "Haarlem, Centrum/Houtplein", 52.379, 4.637, 2),
                StopRecord("stop-amsterdam", "Amsterdam, Elandsgracht", 52.368, 4.881, 3),
            ),
            2: (
                StopRecord("stop-amsterdam", "Amsterdam, Elandsgracht", 52.368, 4.881, 1),
                StopRecord("stop-haarlem", "Haarlem, Centrum/Houtplein", 52.379, 4.637, 2),
                StopRecord("stop-ghost", "Unknown", 0.0, 0.0, 3),
            ),
        },
    )
