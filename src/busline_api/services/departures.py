"""Departure board queries: cached or live OVapi departures, merged with GTFS-RT arrivals."""

from __future__ import annotations

from dataclasses import asdict
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from busline_api.logging import get_logger

if TYPE_CHECKING:
    from busline_api.models.departures import DepartureResult
    from busline_api.models.realtime import RealtimeArrival
    from busline_api.services.ovapi.client import OvapiClient
    from busline_api.services.polling.poller import FeedPoller
    from busline_api.services.reconciliation.departed import ArrivalIndex
    from busline_api.services.reconciliation.engine import ReconciliationEngine
    from busline_api.services.reconciliation.stop_bridge import StopBridge

logger = get_logger(__name__)


class DepartureService:
    """Answers departure board queries for any timing point.

    The polled timing point is served from the departures cache. Any other
    timing point, or the polled one before its first successful poll, is
    fetched from OVapi on the request path; a ``FetchError`` there propagates.
    """

    def __init__(
        self,
        ovapi: OvapiClient,
        departures_poller: FeedPoller[DepartureResult],
        arrivals_poller: FeedPoller[ArrivalIndex],
        bridge: StopBridge,
        engine: ReconciliationEngine,
        polled_tpc: str,
    ) -> None:
        self._ovapi = ovapi
        self._departures = departures_poller
        self._arrivals = arrivals_poller
        self._bridge = bridge
        self._engine = engine
        self.polled_tpc = polled_tpc

    async def _source_departures(self, tpc: str) -> tuple[DepartureResult, bool]:
        cache = self._departures.cache
        if tpc == self.polled_tpc and cache.data is not None:
            return cache.data, cache.stale
        logger.debug("Departures not cached, fetching directly", tpc=tpc)
        return await self._ovapi.fetch_departures(tpc), False

    def pending_arrivals(self, stop_id: Optional[str]) -> List[RealtimeArrival]:
        index = self._arrivals.cache.data
        if stop_id is None or index is None:
            return []
        return index.pending_for_stop(stop_id)

    async def board(self, tpc: str, direction: int, walk_time_minutes: int = 0) -> Dict[str, Any]:
        """Merged departure board for a timing point and display direction.

        Raises:
            FetchError: If the timing point is not cached and OVapi fails.
        """
        result, stale = await self._source_departures(tpc)
        stop_id = self._bridge.lookup_stop_id(tpc, direction)
        merged = self._engine.merge(
            result.departures,
            direction,
            stop_id,
            self.pending_arrivals(stop_id),
            walk_time_minutes,
        )

        destination = (merged[0].destination if merged else "") or (
            self._engine.default_destination(direction)
        )
        return {
            "stop": asdict(result.stop) if result.stop is not None else None,
            "direction": direction,
            "destination": destination,
            "walkTimeMinutes": walk_time_minutes,
            "departures": [dep.to_dict() for dep in merged],
            "stale": stale or self._arrivals.cache.stale,
            "timestamp": result.timestamp,
        }
