"""Departed-stop inference over a trip's stop-time predictions."""

from __future__ import annotations

from collections import defaultdict
from typing import TYPE_CHECKING, Dict, Iterable, List, Tuple

from busline_api.models.realtime import RealtimeArrival

if TYPE_CHECKING:
    from busline_api.models.realtime import StopTimePrediction, TripStopPrediction

DEFAULT_GRACE_SEC = 60


def mark_departed(
    updates: Iterable[StopTimePrediction],
    now: int,
    grace_sec: int = DEFAULT_GRACE_SEC,
) -> List[Tuple[StopTimePrediction, bool]]:
    """Pair each stop of a trip with whether the vehicle has passed it.

    Stops are ordered by sequence. The first stop whose predicted time is
    later than ``now - grace_sec`` is the next stop; everything before it is
    departed. When no stop qualifies the whole trip is departed.
    """
    ordered = sorted(updates, key=lambda stu: stu.stop_sequence)
    cutoff = now - grace_sec

    next_idx = -1
    for idx, stu in enumerate(ordered):
        time = stu.predicted_time
        if time is not None and time > cutoff:
            next_idx = idx
            break

    return [(stu, next_idx == -1 or idx < next_idx) for idx, stu in enumerate(ordered)]


class ArrivalIndex:
    """Realtime arrivals keyed by GTFS stop id, each list sorted by time."""

    def __init__(self, by_stop: Dict[str, List[RealtimeArrival]] | None = None) -> None:
        self._by_stop = by_stop or {}

    def __len__(self) -> int:
        return len(self._by_stop)

    def pending_for_stop(self, stop_id: str) -> List[RealtimeArrival]:
        """Arrivals at ``stop_id`` whose vehicle has not yet passed the stop."""
        return [arrival for arrival in self._by_stop.get(stop_id, []) if not arrival.departed]


def build_arrival_index(
    trips: Iterable[TripStopPrediction],
    now: int,
    grace_sec: int = DEFAULT_GRACE_SEC,
) -> ArrivalIndex:
    """Derive the per-stop arrival index from one trip-updates poll."""
    by_stop: Dict[str, List[RealtimeArrival]] = defaultdict(list)

    for trip in trips:
        for stu, departed in mark_departed(trip.stop_time_updates, now, grace_sec):
            time = stu.predicted_time
            if not time:
                continue
            by_stop[stu.stop_id].append(
                RealtimeArrival(
                    trip_id=trip.trip_id,
                    stop_id=stu.stop_id,
                    arrival_time=time,
                    delay=stu.delay,
                    departed=departed,
                )
            )

    for arrivals in by_stop.values():
        arrivals.sort(key=lambda arrival: arrival.arrival_time)

    return ArrivalIndex(dict(by_stop))
