"""Response schemas of the public /api endpoints (camelCase on the wire)."""

from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class StopInfoOut(CamelModel):
    name: str
    tpc: str
    latitude: float
    longitude: float


class DepartureOut(CamelModel):
    journey_number: int
    scheduled_departure: str
    expected_departure: str
    delay_minutes: int
    status: str
    is_delayed: bool
    destination: str
    line_direction: int
    source: Literal["realtime", "scheduled"]
    leave_by: Optional[str] = None


class DeparturesResponse(CamelModel):
    stop: Optional[StopInfoOut]
    direction: int
    destination: str
    walk_time_minutes: int
    departures: List[DepartureOut]
    stale: bool
    timestamp: str


class VehicleOut(CamelModel):
    vehicle_id: str
    trip_id: str
    latitude: float
    longitude: float
    direction: Optional[int]
    delay_seconds: int
    current_status: str
    stop_id: str
    timestamp: str


class RouteStopOut(CamelModel):
    stop_id: str
    name: str
    latitude: float
    longitude: float
    sequence: int


class DirectionTopology(CamelModel):
    name: str
    stops: List[RouteStopOut]
    shape: List[List[float]]


class RouteTopology(CamelModel):
    direction1: DirectionTopology
    direction2: DirectionTopology


class VehiclesResponse(CamelModel):
    vehicles: List[VehicleOut]
    route: RouteTopology
    stale: bool
    timestamp: str
