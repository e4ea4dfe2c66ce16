"""Feed polling, backoff and staleness detection."""

from busline_api.services.polling.poller import (
    FeedCache,
    FeedPoller,
    PollState,
    vehicles_fingerprint,
)
from busline_api.services.polling.scheduler import PollingScheduler
from busline_api.services.polling.staleness import StalenessDetector

__all__ = [
    "FeedCache",
    "FeedPoller",
    "PollState",
    "PollingScheduler",
    "StalenessDetector",
    "vehicles_fingerprint",
]
