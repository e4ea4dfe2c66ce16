"""Static reference data for the tracked line: fetch, extract, persist, hold."""

from busline_api.services.reference.extractor import ExtractionError, extract_snapshot
from busline_api.services.reference.fetcher import GtfsStaticFetcher, StaticFetchError
from busline_api.services.reference.refresher import ReferenceRefresher
from busline_api.services.reference.store import ReferenceStore

__all__ = [
    "ExtractionError",
    "GtfsStaticFetcher",
    "ReferenceRefresher",
    "ReferenceStore",
    "StaticFetchError",
    "extract_snapshot",
]
