"""Domain records for the bus line tracker."""

from busline_api.models.departures import (
    DepartureResult,
    MergedDeparture,
    ScheduledDeparture,
    StopInfo,
)
from busline_api.models.realtime import (
    RealtimeArrival,
    StopTimePrediction,
    TripStopPrediction,
    VehiclePosition,
)
from busline_api.models.reference import FeedVersion, ReferenceSnapshot, StopRecord

__all__ = [
    "DepartureResult",
    "FeedVersion",
    "MergedDeparture",
    "RealtimeArrival",
    "ReferenceSnapshot",
    "ScheduledDeparture",
    "StopInfo",
    "StopRecord",
    "StopTimePrediction",
    "TripStopPrediction",
    "VehiclePosition",
]
