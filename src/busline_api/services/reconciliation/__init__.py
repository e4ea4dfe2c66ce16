"""Reconciliation of scheduled departures with realtime predictions."""

from busline_api.services.reconciliation.departed import (
    ArrivalIndex,
    build_arrival_index,
    mark_departed,
)
from busline_api.services.reconciliation.engine import (
    ReconciliationEngine,
    compute_leave_by,
    to_local_time_string,
)
from busline_api.services.reconciliation.stop_bridge import TPC_TO_NAME, StopBridge

__all__ = [
    "TPC_TO_NAME",
    "ArrivalIndex",
    "ReconciliationEngine",
    "StopBridge",
    "build_arrival_index",
    "compute_leave_by",
    "mark_departed",
    "to_local_time_string",
]
