"""Fetch, decode and filter the line's GTFS-RT feeds."""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Tuple

from busline_api.logging import get_logger
from busline_api.services.gtfs_rt.decoder import GtfsRtDecoder
from busline_api.services.gtfs_rt.fetcher import GtfsRtFetcher
from busline_api.services.gtfs_rt.normalizer import GtfsRtNormalizer

if TYPE_CHECKING:
    from google.transit import gtfs_realtime_pb2  # type: ignore[import-untyped]

    from busline_api.models.realtime import TripStopPrediction, VehiclePosition
    from busline_api.models.reference import ReferenceSnapshot
    from busline_api.services.reference.store import ReferenceStore

    Normalize = Callable[[gtfs_realtime_pb2.FeedMessage, Optional[ReferenceSnapshot]], List[Any]]

logger = get_logger(__name__)

FEED_VEHICLE_POSITIONS = "vehicle_positions"
FEED_TRIP_UPDATES = "trip_updates"


class RealtimeFeedClient:
    """Composes fetcher, decoder and normalizer for the two realtime feeds.

    Entities are filtered against whatever snapshot is active at the moment
    the feed is normalized. A payload whose hash matches the previous one,
    filtered against the same snapshot, is not decoded again.
    """

    def __init__(
        self,
        store: ReferenceStore,
        vehicle_positions_url: str,
        trip_updates_url: str,
        fetcher: GtfsRtFetcher | None = None,
    ) -> None:
        self._store = store
        self._urls = {
            FEED_VEHICLE_POSITIONS: vehicle_positions_url,
            FEED_TRIP_UPDATES: trip_updates_url,
        }
        self._fetcher = fetcher or GtfsRtFetcher()
        self._decoder = GtfsRtDecoder()
        self._normalizer = GtfsRtNormalizer()
        self._last: Dict[str, Tuple[str, Optional[ReferenceSnapshot], List[Any]]] = {}

    async def _fetch_normalized(
        self, feed_type: str, poll_id: str | None, normalize: Normalize
    ) -> List[Any]:
        poll_id = poll_id or str(uuid.uuid4())[:8]
        data, feed_hash = await self._fetcher.fetch(self._urls[feed_type], feed_type, poll_id)
        snapshot = self._store.snapshot

        previous = self._last.get(feed_type)
        if previous is not None and previous[0] == feed_hash and previous[1] is snapshot:
            logger.debug(
                "GTFS-RT payload unchanged, reusing normalized entities",
                feed_type=feed_type,
                poll_id=poll_id,
                feed_hash=feed_hash[:12],
            )
            return list(previous[2])

        feed = self._decoder.decode(data, feed_type, poll_id)
        entities = normalize(feed, snapshot)
        self._last[feed_type] = (feed_hash, snapshot, entities)
        return list(entities)

    async def fetch_vehicle_positions(self, poll_id: str | None = None) -> list[VehiclePosition]:
        """Current vehicles of the tracked line.

        Raises:
            FeedFetchError: If the feed cannot be downloaded.
            FeedDecodeError: If the payload is not a valid FeedMessage.
        """
        return await self._fetch_normalized(
            FEED_VEHICLE_POSITIONS, poll_id, self._normalizer.vehicle_positions
        )

    async def fetch_trip_updates(self, poll_id: str | None = None) -> list[TripStopPrediction]:
        """Current stop-time predictions for the tracked line's trips.

        Raises:
            FeedFetchError: If the feed cannot be downloaded.
            FeedDecodeError: If the payload is not a valid FeedMessage.
        """
        return await self._fetch_normalized(
            FEED_TRIP_UPDATES, poll_id, self._normalizer.trip_updates
        )
