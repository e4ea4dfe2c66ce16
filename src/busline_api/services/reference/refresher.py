"""Reference data refresher: version check, download, extract, persist, install."""

from __future__ import annotations

import asyncio
import json
import zipfile
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional, Tuple

from busline_api.logging import get_logger
from busline_api.models.reference import FeedVersion
from busline_api.services.errors import FetchError
from busline_api.services.reference.extractor import ExtractionError, extract_snapshot
from busline_api.services.reference.reader import MissingColumnError, MissingRequiredFileError
from busline_api.services.reference.storage import (
    SnapshotFormatError,
    read_snapshot,
    write_snapshot,
)

if TYPE_CHECKING:
    from busline_api.config import Settings
    from busline_api.services.reference.fetcher import GtfsStaticFetcher
    from busline_api.services.reference.store import ReferenceStore

logger = get_logger(__name__)

ARCHIVE_NAME = "gtfs-nl.zip"
ARCHIVE_META_NAME = "gtfs-meta.json"

_REFRESH_ERRORS = (
    FetchError,
    ExtractionError,
    MissingRequiredFileError,
    MissingColumnError,
    zipfile.BadZipFile,
    OSError,
)


def same_version(current: Optional[FeedVersion], candidate: FeedVersion) -> bool:
    """True when both tokens identify the same upstream dataset.

    The ETag is authoritative; Last-Modified is used only when neither side
    carries an ETag. Two empty tokens never compare equal.
    """
    if current is None:
        return False
    if current.etag or candidate.etag:
        return current.etag == candidate.etag
    if current.last_modified or candidate.last_modified:
        return current.last_modified == candidate.last_modified
    return False


class ReferenceRefresher:
    """Re-derives the reference snapshot when the upstream dataset changes.

    Only one refresh runs at a time. A call that arrives while another refresh
    holds the lock returns False immediately instead of queueing.
    """

    def __init__(
        self,
        store: ReferenceStore,
        fetcher: GtfsStaticFetcher,
        settings: Settings,
    ) -> None:
        self._store = store
        self._fetcher = fetcher
        self._settings = settings
        self._lock = asyncio.Lock()
        self._download_dir = Path(settings.gtfs_download_dir)
        self._route_path = Path(settings.route_data_path)

        self.last_refresh_at: datetime | None = None
        self.last_error: str | None = None
        self.refresh_count = 0

    @property
    def in_progress(self) -> bool:
        return self._lock.locked()

    def load_persisted(self) -> bool:
        """Install the snapshot persisted on disk, if any.

        Returns:
            True when a snapshot was loaded and installed.
        """
        try:
            snapshot = read_snapshot(self._route_path)
        except SnapshotFormatError as exc:
            logger.error(
                "Persisted reference snapshot unreadable",
                path=str(self._route_path),
                error=str(exc),
            )
            return False
        if snapshot is None:
            logger.info("No persisted reference snapshot", path=str(self._route_path))
            return False
        self._store.install(snapshot)
        return True

    async def check_for_update(self) -> Tuple[bool, FeedVersion]:
        """Compare the upstream version token with the active snapshot's.

        Raises:
            StaticFetchError: If the HEAD request fails.
        """
        version = await self._fetcher.head_version()
        changed = not same_version(self._store.version, version)
        return changed, version

    async def refresh(self, force: bool = False) -> bool:
        """Run one refresh cycle.

        Args:
            force: Re-derive even when the version token is unchanged.

        Returns:
            True if a new snapshot was installed, False if skipped or failed.
        """
        if self._lock.locked():
            logger.info("Reference refresh already in progress, skipping")
            return False

        async with self._lock:
            try:
                return await self._refresh(force)
            except _REFRESH_ERRORS as exc:
                self.last_error = str(exc)
                logger.error("Reference refresh failed", error=str(exc))
                return False
            except Exception as exc:
                self.last_error = str(exc)
                logger.error("Unexpected reference refresh error", exc_info=exc)
                return False

    async def _refresh(self, force: bool) -> bool:
        changed, version = await self.check_for_update()
        if not changed and not force and self._store.is_loaded:
            logger.info("Reference data up to date", etag=version.etag)
            return False

        archive = await self._obtain_archive(version)
        snapshot = await asyncio.to_thread(
            extract_snapshot,
            archive,
            version,
            operator_code=self._settings.operator_code,
            agency_name=self._settings.agency_name,
            line_public_number=self._settings.line_public_number,
        )
        await asyncio.to_thread(write_snapshot, self._route_path, snapshot)
        self._store.install(snapshot)

        self.last_refresh_at = datetime.now(timezone.utc)
        self.last_error = None
        self.refresh_count += 1
        logger.info(
            "Reference data refreshed",
            etag=version.etag,
            last_modified=version.last_modified,
            refresh_count=self.refresh_count,
        )
        return True

    async def _obtain_archive(self, version: FeedVersion) -> Path:
        """Return a local ZIP for ``version``, downloading only if needed."""
        archive = self._download_dir / ARCHIVE_NAME
        meta_path = self._download_dir / ARCHIVE_META_NAME

        cached = self._read_archive_meta(meta_path)
        if archive.exists() and same_version(cached, version):
            logger.info("Reusing cached static GTFS archive", path=str(archive))
            return archive

        await self._fetcher.download(archive)
        meta = {
            "etag": version.etag,
            "lastModified": version.last_modified,
            "downloadedAt": datetime.now(timezone.utc).isoformat(),
        }
        meta_path.write_text(json.dumps(meta, indent=2), encoding="utf-8")
        return archive

    @staticmethod
    def _read_archive_meta(path: Path) -> Optional[FeedVersion]:
        if not path.exists():
            return None
        try:
            meta: dict[str, Any] = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            return None
        return FeedVersion(
            etag=str(meta.get("etag", "")),
            last_modified=str(meta.get("lastModified", "")),
        )

    def get_status(self) -> dict[str, Any]:
        """Refresher and active snapshot status for the admin endpoint."""
        snapshot = self._store.snapshot
        return {
            "loaded": snapshot is not None,
            "extracted_at": snapshot.extracted_at if snapshot else None,
            "etag": snapshot.version.etag if snapshot else None,
            "last_modified": snapshot.version.last_modified if snapshot else None,
            "route_ids": sorted(snapshot.route_ids) if snapshot else [],
            "trip_count": len(snapshot.trip_ids) if snapshot else 0,
            "in_progress": self.in_progress,
            "refresh_count": self.refresh_count,
            "last_refresh_at": self.last_refresh_at.isoformat() if self.last_refresh_at else None,
            "last_error": self.last_error,
        }
