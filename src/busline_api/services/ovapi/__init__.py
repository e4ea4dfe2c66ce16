"""OVapi REST departures feed."""

from busline_api.services.ovapi.client import OvapiClient, ScheduleFetchError, parse_passes

__all__ = ["OvapiClient", "ScheduleFetchError", "parse_passes"]
