"""Departure records from the OVapi feed and their merged form."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Literal, Optional

DepartureSource = Literal["realtime", "scheduled"]


@dataclass(frozen=True)
class StopInfo:
    name: str
    tpc: str
    latitude: float
    longitude: float


@dataclass(frozen=True)
class ScheduledDeparture:
    """One passage at a timing point. Times are naive local ISO strings."""

    journey_number: int
    scheduled_departure: str
    expected_departure: str
    delay_minutes: int
    status: str
    is_delayed: bool
    destination: str
    line_direction: int


@dataclass
class DepartureResult:
    stop: Optional[StopInfo]
    departures: List[ScheduledDeparture] = field(default_factory=list)
    timestamp: str = ""


@dataclass(frozen=True)
class MergedDeparture:
    """Departure after reconciliation with realtime predictions."""

    journey_number: int
    scheduled_departure: str
    expected_departure: str
    delay_minutes: int
    status: str
    is_delayed: bool
    destination: str
    line_direction: int
    source: DepartureSource
    leave_by: Optional[str] = None

    @classmethod
    def from_scheduled(
        cls, departure: ScheduledDeparture, source: DepartureSource = "scheduled"
    ) -> MergedDeparture:
        return cls(**asdict(departure), source=source)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "journeyNumber": self.journey_number,
            "scheduledDeparture": self.scheduled_departure,
            "expectedDeparture": self.expected_departure,
            "delayMinutes": self.delay_minutes,
            "status": self.status,
            "isDelayed": self.is_delayed,
            "destination": self.destination,
            "lineDirection": self.line_direction,
            "source": self.source,
            "leaveBy": self.leave_by,
        }
