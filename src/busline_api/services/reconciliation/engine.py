"""Merge scheduled departures at a stop with realtime arrival predictions."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Dict, List, Mapping, Optional, Sequence, Set, Tuple
from zoneinfo import ZoneInfo

from busline_api.logging import get_logger
from busline_api.models.departures import MergedDeparture
from busline_api.services.ovapi.client import round_half_up

if TYPE_CHECKING:
    from busline_api.models.departures import ScheduledDeparture
    from busline_api.models.realtime import RealtimeArrival

logger = get_logger(__name__)

LOCAL_FORMAT = "%Y-%m-%dT%H:%M:%S"
DEFAULT_TIMEZONE = "Europe/Amsterdam"
DEFAULT_TOLERANCE_MINUTES = 10.0
REALTIME_ONLY_STATUS = "DRIVING"


def to_local_time_string(unix_ts: int, tz: str | ZoneInfo = DEFAULT_TIMEZONE) -> str:
    """Render unix seconds as a naive local string, e.g. ``2026-02-15T18:35:00``."""
    zone = tz if isinstance(tz, ZoneInfo) else ZoneInfo(tz)
    return datetime.fromtimestamp(unix_ts, zone).strftime(LOCAL_FORMAT)


def parse_local(value: str, tz: str | ZoneInfo = DEFAULT_TIMEZONE) -> Optional[datetime]:
    """Parse a local ISO string into a naive datetime.

    Strings carrying an offset are converted into the local zone first so
    they compare correctly with the naive strings OVapi returns.
    """
    try:
        parsed = datetime.fromisoformat(value)
    except (TypeError, ValueError):
        return None
    if parsed.tzinfo is not None:
        zone = tz if isinstance(tz, ZoneInfo) else ZoneInfo(tz)
        parsed = parsed.astimezone(zone).replace(tzinfo=None)
    return parsed


def compute_leave_by(
    expected_departure: str,
    walk_time_minutes: int,
    tz: str | ZoneInfo = DEFAULT_TIMEZONE,
) -> Optional[str]:
    """Expected departure minus walking time, as a naive local string.

    Computed on the naive local value, never through UTC, so the result is
    in the same wall-clock frame as the departure it derives from.
    """
    if walk_time_minutes <= 0:
        return None
    expected = parse_local(expected_departure, tz)
    if expected is None:
        return None
    return (expected - timedelta(minutes=walk_time_minutes)).strftime(LOCAL_FORMAT)


class ReconciliationEngine:
    """Pairs scheduled departures with realtime arrivals at one stop.

    Pure and synchronous: the caller resolves the stop id and hands in the
    pending arrivals taken from the latest trip-updates cycle.
    """

    def __init__(
        self,
        default_destinations: Mapping[int, str],
        timezone: str = DEFAULT_TIMEZONE,
        match_tolerance_minutes: float = DEFAULT_TOLERANCE_MINUTES,
    ) -> None:
        self._default_destinations = dict(default_destinations)
        self._zone = ZoneInfo(timezone)
        self._tolerance = timedelta(minutes=match_tolerance_minutes)

    def default_destination(self, direction: int) -> str:
        return self._default_destinations.get(direction, "")

    def merge(
        self,
        departures: Sequence[ScheduledDeparture],
        direction: int,
        stop_id: Optional[str],
        arrivals: Sequence[RealtimeArrival],
        walk_time_minutes: int = 0,
    ) -> List[MergedDeparture]:
        """Reconcile a stop's departures in one direction.

        Args:
            departures: Scheduled departures for the timing point.
            direction: Display direction (1/2) to keep.
            stop_id: GTFS stop id the arrivals belong to, or None if unknown.
            arrivals: Non-departed realtime arrivals at ``stop_id``.
            walk_time_minutes: Walking time used for ``leave_by``; 0 disables it.

        Returns:
            Merged departures sorted by expected time.
        """
        candidates = list(arrivals) if stop_id else []
        implied = [
            parse_local(to_local_time_string(rt.arrival_time - rt.delay, self._zone), self._zone)
            for rt in candidates
        ]
        in_direction = [dep for dep in departures if dep.line_direction == direction]
        assigned = self._assign(in_direction, candidates, implied)
        claimed: Set[str] = {candidates[index].trip_id for index in assigned.values()}

        merged: List[MergedDeparture] = []
        for position, dep in enumerate(in_direction):
            if position not in assigned:
                merged.append(MergedDeparture.from_scheduled(dep, "scheduled"))
                continue

            best = candidates[assigned[position]]
            delay_minutes = round_half_up(best.delay / 60)
            merged.append(
                replace(
                    MergedDeparture.from_scheduled(dep, "realtime"),
                    expected_departure=to_local_time_string(best.arrival_time, self._zone),
                    delay_minutes=delay_minutes,
                    is_delayed=delay_minutes >= 1,
                )
            )

        for rt in candidates:
            if rt.trip_id in claimed:
                continue
            merged.append(
                MergedDeparture(
                    journey_number=0,
                    scheduled_departure=to_local_time_string(
                        rt.arrival_time - rt.delay, self._zone
                    ),
                    expected_departure=to_local_time_string(rt.arrival_time, self._zone),
                    delay_minutes=round_half_up(rt.delay / 60),
                    status=REALTIME_ONLY_STATUS,
                    is_delayed=rt.delay >= 60,
                    destination=self.default_destination(direction),
                    line_direction=direction,
                    source="realtime",
                )
            )

        merged.sort(key=lambda dep: parse_local(dep.expected_departure, self._zone) or datetime.max)

        if walk_time_minutes > 0:
            merged = [
                replace(
                    dep,
                    leave_by=compute_leave_by(
                        dep.expected_departure, walk_time_minutes, self._zone
                    ),
                )
                for dep in merged
            ]

        logger.debug(
            "Departures reconciled",
            stop_id=stop_id,
            direction=direction,
            departure_count=len(merged),
            realtime_count=sum(1 for dep in merged if dep.source == "realtime"),
        )
        return merged

    def _assign(
        self,
        departures: Sequence[ScheduledDeparture],
        candidates: Sequence[RealtimeArrival],
        implied: Sequence[Optional[datetime]],
    ) -> Dict[int, int]:
        """Pair departures with arrivals, closest scheduled times first.

        Returns:
            Departure position mapped to candidate position. Each departure
            and each trip id is used at most once.
        """
        pairs: List[Tuple[timedelta, int, int]] = []
        for dep_pos, dep in enumerate(departures):
            scheduled = parse_local(dep.scheduled_departure, self._zone)
            if scheduled is None:
                continue
            for rt_pos, rt_scheduled in enumerate(implied):
                if rt_scheduled is None:
                    continue
                diff = abs(rt_scheduled - scheduled)
                if diff < self._tolerance:
                    pairs.append((diff, dep_pos, rt_pos))
        pairs.sort()

        assigned: Dict[int, int] = {}
        claimed: Set[str] = set()
        for _diff, dep_pos, rt_pos in pairs:
            trip_id = candidates[rt_pos].trip_id
            if dep_pos in assigned or trip_id in claimed:
                continue
            assigned[dep_pos] = rt_pos
            claimed.add(trip_id)
        return assigned
