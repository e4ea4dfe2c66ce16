"""Holder of the active reference snapshot."""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable, List, Optional

from busline_api.logging import get_logger
from busline_api.services.errors import ReferenceDataMissing

if TYPE_CHECKING:
    from busline_api.models.reference import FeedVersion, ReferenceSnapshot

logger = get_logger(__name__)

SnapshotListener = Callable[["ReferenceSnapshot"], None]


class ReferenceStore:
    """Owns the single active ReferenceSnapshot.

    Installing a snapshot is one attribute assignment, so readers that grab
    ``store.snapshot`` always hold a complete snapshot even while a refresh
    installs its successor. Listeners run after the swap and are used to drop
    caches derived from the previous snapshot.
    """

    def __init__(self, snapshot: Optional[ReferenceSnapshot] = None) -> None:
        self._snapshot = snapshot
        self._listeners: List[SnapshotListener] = []

    @property
    def snapshot(self) -> Optional[ReferenceSnapshot]:
        return self._snapshot

    @property
    def is_loaded(self) -> bool:
        return self._snapshot is not None

    @property
    def version(self) -> Optional[FeedVersion]:
        return self._snapshot.version if self._snapshot is not None else None

    def require(self) -> ReferenceSnapshot:
        """Return the active snapshot or raise ReferenceDataMissing."""
        snapshot = self._snapshot
        if snapshot is None:
            msg = "No reference snapshot loaded"
            raise ReferenceDataMissing(msg)
        return snapshot

    def add_listener(self, listener: SnapshotListener) -> None:
        self._listeners.append(listener)

    def install(self, snapshot: ReferenceSnapshot) -> None:
        """Atomically replace the active snapshot and notify listeners."""
        self._snapshot = snapshot
        logger.info(
            "Reference snapshot installed",
            extracted_at=snapshot.extracted_at,
            etag=snapshot.version.etag,
            route_ids=sorted(snapshot.route_ids),
            trip_count=len(snapshot.trip_ids),
            shape_count=len(snapshot.shapes),
        )
        for listener in list(self._listeners):
            listener(snapshot)
