"""Live vehicle channel: pub/sub, SSE framing and the resilient consumer."""

from busline_api.services.live.client import (
    ConnectionState,
    ConnectionWatchdog,
    LiveChannelClient,
)
from busline_api.services.live.events import EventBus, VehiclesUpdated
from busline_api.services.live.stream import LiveStream, format_event

__all__ = [
    "ConnectionState",
    "ConnectionWatchdog",
    "EventBus",
    "LiveChannelClient",
    "LiveStream",
    "VehiclesUpdated",
    "format_event",
]
