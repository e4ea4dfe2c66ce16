"""GTFS-RT protobuf decode layer."""

from __future__ import annotations

from google.protobuf.message import DecodeError as ProtobufDecodeError
from google.transit import gtfs_realtime_pb2

from busline_api.logging import get_logger
from busline_api.services.errors import DecodeError

# Imported for its side effect: the OVapi extension must be in the pool
# before the first ParseFromString.
from busline_api.services.gtfs_rt import ovapi_extension  # noqa: F401

logger = get_logger(__name__)


class FeedDecodeError(DecodeError):
    """Raised when protobuf decoding fails."""


class GtfsRtDecoder:
    """Decodes raw protobuf bytes into GTFS-RT FeedMessage objects."""

    @staticmethod
    def decode(data: bytes, feed_type: str, poll_id: str) -> gtfs_realtime_pb2.FeedMessage:
        """Decode protobuf bytes into a FeedMessage.

        Args:
            data: Raw protobuf bytes.
            feed_type: Label for logging.
            poll_id: Correlation ID.

        Returns:
            Parsed FeedMessage.

        Raises:
            FeedDecodeError: If protobuf parsing fails.
        """
        try:
            feed = gtfs_realtime_pb2.FeedMessage()
            feed.ParseFromString(data)
        except ProtobufDecodeError as exc:
            msg = f"Failed to decode {feed_type} protobuf"
            logger.warning(msg, feed_type=feed_type, poll_id=poll_id, error=str(exc))
            raise FeedDecodeError(msg) from exc

        logger.debug(
            "GTFS-RT feed decoded",
            feed_type=feed_type,
            poll_id=poll_id,
            entity_count=len(feed.entity),
            feed_timestamp=GtfsRtDecoder.get_feed_timestamp(feed),
            gtfs_rt_version=feed.header.gtfs_realtime_version,
        )

        return feed

    @staticmethod
    def get_feed_timestamp(feed: gtfs_realtime_pb2.FeedMessage) -> int:
        """Header timestamp in unix seconds, or 0 if not set."""
        return feed.header.timestamp if feed.header.timestamp else 0
