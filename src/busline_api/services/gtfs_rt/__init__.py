"""GTFS-Realtime feeds for the tracked line: fetch, decode, normalize."""

from busline_api.services.gtfs_rt.decoder import FeedDecodeError, GtfsRtDecoder
from busline_api.services.gtfs_rt.feeds import RealtimeFeedClient
from busline_api.services.gtfs_rt.fetcher import FeedFetchError, GtfsRtFetcher
from busline_api.services.gtfs_rt.normalizer import GtfsRtNormalizer

__all__ = [
    "FeedDecodeError",
    "FeedFetchError",
    "GtfsRtDecoder",
    "GtfsRtFetcher",
    "GtfsRtNormalizer",
    "RealtimeFeedClient",
]
