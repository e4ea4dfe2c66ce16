"""Wiring of the long-lived service objects shared by the HTTP layer."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, List, Optional

from fastapi import Request

from busline_api.config import Settings, get_settings
from busline_api.logging import get_logger
from busline_api.services.departures import DepartureService
from busline_api.services.gtfs_rt.feeds import (
    FEED_TRIP_UPDATES,
    FEED_VEHICLE_POSITIONS,
    RealtimeFeedClient,
)
from busline_api.services.gtfs_rt.fetcher import GtfsRtFetcher
from busline_api.services.live.events import EventBus
from busline_api.services.live.stream import LiveStream
from busline_api.services.ovapi.client import OvapiClient
from busline_api.services.polling.poller import FeedPoller, vehicles_fingerprint
from busline_api.services.polling.scheduler import PollingScheduler
from busline_api.services.polling.staleness import StalenessDetector
from busline_api.services.reconciliation.departed import ArrivalIndex, build_arrival_index
from busline_api.services.reconciliation.engine import ReconciliationEngine
from busline_api.services.reconciliation.stop_bridge import StopBridge
from busline_api.services.reference.fetcher import GtfsStaticFetcher
from busline_api.services.reference.refresher import ReferenceRefresher
from busline_api.services.reference.store import ReferenceStore
from busline_api.services.vehicles import VehicleService

if TYPE_CHECKING:
    from busline_api.models.departures import DepartureResult
    from busline_api.models.realtime import VehiclePosition

logger = get_logger(__name__)

FEED_DEPARTURES = "departures"


class Runtime:
    """Owns the reference store, pollers, caches and event bus of one app.

    Built once at startup and stored on ``app.state``. The pollers reach the
    upstream clients through ``self.ovapi`` and ``self.realtime`` at call time.
    """

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        direction_names = {1: settings.direction1_name, 2: settings.direction2_name}

        self.store = ReferenceStore()
        self.bridge = StopBridge(self.store)
        self.store.add_listener(self.bridge.invalidate)

        self.refresher = ReferenceRefresher(
            self.store,
            GtfsStaticFetcher(
                settings.gtfs_static_url,
                timeout_sec=settings.gtfs_download_timeout_sec,
                user_agent=settings.user_agent,
            ),
            settings,
        )
        self.ovapi = OvapiClient(
            settings.ovapi_base_url,
            operator_code=settings.operator_code,
            line_public_number=settings.line_public_number,
            excluded_line_planning_number=settings.night_line_planning_number,
            user_agent=settings.user_agent,
            timeout_sec=settings.fetch_timeout_sec,
        )
        self.realtime = RealtimeFeedClient(
            self.store,
            settings.gtfs_vehicle_positions_url,
            settings.gtfs_trip_updates_url,
            fetcher=GtfsRtFetcher(
                timeout_sec=settings.fetch_timeout_sec,
                max_retries=settings.gtfs_rt_max_retries,
                backoff_base=settings.gtfs_rt_backoff_base,
                user_agent=settings.user_agent,
            ),
        )
        self.engine = ReconciliationEngine(
            default_destinations={
                1: settings.direction1_destination,
                2: settings.direction2_destination,
            },
            timezone=settings.local_timezone,
            match_tolerance_minutes=settings.match_tolerance_minutes,
        )
        self.bus = EventBus(queue_size=settings.sse_queue_size)

        self.vehicles_poller: FeedPoller[List[VehiclePosition]] = FeedPoller(
            FEED_VEHICLE_POSITIONS,
            self._fetch_vehicles,
            interval_sec=settings.vehicle_poll_interval_sec,
            max_backoff_sec=settings.max_backoff_sec,
            on_success=self._on_vehicles,
        )
        self.trip_updates_poller: FeedPoller[ArrivalIndex] = FeedPoller(
            FEED_TRIP_UPDATES,
            self._fetch_arrivals,
            interval_sec=settings.trip_update_poll_interval_sec,
            max_backoff_sec=settings.max_backoff_sec,
        )
        self.departures_poller: FeedPoller[DepartureResult] = FeedPoller(
            FEED_DEPARTURES,
            self._fetch_departures,
            interval_sec=settings.departure_poll_interval_sec,
            max_backoff_sec=settings.max_backoff_sec,
        )

        self.detector = StalenessDetector(
            self.refresher,
            threshold=settings.staleness_threshold,
            operating_start_hour=settings.operating_start_hour,
            operating_end_hour=settings.operating_end_hour,
            timezone_name=settings.local_timezone,
        )
        self.scheduler = PollingScheduler(
            [self.vehicles_poller, self.trip_updates_poller, self.departures_poller],
            self.detector,
            start_delay_sec=settings.poll_start_delay_sec,
            version_check_interval_sec=settings.reference_check_interval_sec,
        )

        self.vehicle_service = VehicleService(self.vehicles_poller, self.store, direction_names)
        self.departure_service = DepartureService(
            self.ovapi,
            self.departures_poller,
            self.trip_updates_poller,
            self.bridge,
            self.engine,
            polled_tpc=settings.default_tpc,
        )
        self._last_fingerprint = ""

    @classmethod
    def build(cls, settings: Optional[Settings] = None) -> Runtime:
        return cls(settings or get_settings())

    async def _fetch_vehicles(self, poll_id: str) -> List[VehiclePosition]:
        return await self.realtime.fetch_vehicle_positions(poll_id)

    async def _fetch_arrivals(self, poll_id: str) -> ArrivalIndex:
        trips = await self.realtime.fetch_trip_updates(poll_id)
        return build_arrival_index(trips, int(time.time()), self.settings.departed_grace_sec)

    async def _fetch_departures(self, _poll_id: str) -> DepartureResult:
        return await self.ovapi.fetch_departures(self.settings.default_tpc)

    def _on_vehicles(self, vehicles: List[VehiclePosition]) -> None:
        fingerprint = vehicles_fingerprint(vehicles)
        if fingerprint != self._last_fingerprint:
            self._last_fingerprint = fingerprint
            delivered = self.bus.publish(self.vehicle_service.vehicles_event(vehicles))
            logger.debug(
                "Vehicle update published",
                vehicle_count=len(vehicles),
                subscriber_count=delivered,
            )
        self.detector.observe(len(vehicles))

    def live_stream(self) -> LiveStream:
        return LiveStream(self.bus, self.vehicle_service, self.settings.sse_heartbeat_sec)

    async def startup(self) -> None:
        """Load persisted reference data, derive it on cold start, start polling.

        The cold-start refresh runs in the background; until it installs a
        snapshot, requests are served with empty topology and filters.
        """
        if not self.refresher.load_persisted():
            logger.info("No usable reference snapshot, starting cold-start refresh")
            self.detector.trigger_refresh("cold-start", force=True)
        if self.settings.poller_auto_start:
            await self.scheduler.start()

    async def shutdown(self) -> None:
        await self.scheduler.stop()
        await self.detector.cancel()


def get_runtime(request: Request) -> Runtime:
    """FastAPI dependency returning the app's runtime."""
    return request.app.state.runtime
