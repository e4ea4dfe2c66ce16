"""Static GTFS dataset fetcher: version check and ZIP download."""

from __future__ import annotations

import asyncio
import zipfile
from pathlib import Path

import httpx

from busline_api.logging import get_logger
from busline_api.models.reference import FeedVersion
from busline_api.services.errors import FetchError

logger = get_logger(__name__)

DEFAULT_TIMEOUT_SEC = 300
DEFAULT_MAX_RETRIES = 3
DEFAULT_BACKOFF_BASE = 2.0

# ZIP magic bytes
ZIP_MAGIC = b"PK\x03\x04"


class StaticFetchError(FetchError):
    """Raised when the static dataset cannot be checked or downloaded."""


class InvalidZipError(StaticFetchError):
    """Raised when downloaded content is not a valid ZIP."""


class GtfsStaticFetcher:
    """Talks to the static GTFS dataset endpoint."""

    def __init__(
        self,
        url: str,
        timeout_sec: int = DEFAULT_TIMEOUT_SEC,
        max_retries: int = DEFAULT_MAX_RETRIES,
        backoff_base: float = DEFAULT_BACKOFF_BASE,
        user_agent: str = "",
    ) -> None:
        self.url = url
        self.timeout_sec = timeout_sec
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self.headers = {"User-Agent": user_agent} if user_agent else {}

    async def head_version(self) -> FeedVersion:
        """HEAD the dataset URL and return its ETag / Last-Modified.

        Raises:
            StaticFetchError: On network failure or non-success status.
        """
        try:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(30),
                follow_redirects=True,
                headers=self.headers,
            ) as client:
                response = await client.head(self.url)
                response.raise_for_status()
        except (httpx.HTTPStatusError, httpx.RequestError) as exc:
            msg = f"Static GTFS version check failed: {exc}"
            raise StaticFetchError(msg) from exc

        version = FeedVersion(
            etag=response.headers.get("etag", ""),
            last_modified=response.headers.get("last-modified", ""),
        )
        logger.info(
            "Static GTFS version checked",
            etag=version.etag,
            last_modified=version.last_modified,
        )
        return version

    async def download(self, dest: str | Path) -> Path:
        """Stream the dataset ZIP to ``dest`` with retry + exponential backoff.

        Raises:
            StaticFetchError: If all retries are exhausted.
            InvalidZipError: If the downloaded file is not a ZIP archive.
        """
        dest = Path(dest)
        dest.parent.mkdir(parents=True, exist_ok=True)
        partial = dest.with_suffix(dest.suffix + ".part")
        last_error: Exception | None = None

        for attempt in range(self.max_retries):
            try:
                logger.info(
                    "Downloading static GTFS dataset",
                    url=self.url,
                    attempt=attempt + 1,
                    max_retries=self.max_retries,
                )
                async with httpx.AsyncClient(
                    timeout=httpx.Timeout(self.timeout_sec),
                    follow_redirects=True,
                    headers=self.headers,
                ) as client:
                    async with client.stream("GET", self.url) as response:
                        response.raise_for_status()
                        with partial.open("wb") as fh:
                            async for chunk in response.aiter_bytes():
                                fh.write(chunk)

                validate_zip_file(partial)
                partial.replace(dest)
                logger.info(
                    "Static GTFS dataset downloaded",
                    path=str(dest),
                    size_bytes=dest.stat().st_size,
                )
                return dest

            except (httpx.HTTPStatusError, httpx.RequestError) as exc:
                last_error = exc
                if attempt < self.max_retries - 1:
                    delay = self.backoff_base ** (attempt + 1)
                    logger.warning(
                        "Download attempt failed, retrying",
                        attempt=attempt + 1,
                        delay_sec=delay,
                        error=str(exc),
                    )
                    await asyncio.sleep(delay)

        partial.unlink(missing_ok=True)
        msg = f"Failed to download static GTFS after {self.max_retries} attempts"
        raise StaticFetchError(msg) from last_error


def validate_zip_file(path: Path) -> None:
    """Validate that the file at ``path`` is a ZIP archive."""
    with path.open("rb") as fh:
        magic = fh.read(4)
    if magic != ZIP_MAGIC or not zipfile.is_zipfile(path):
        path.unlink(missing_ok=True)
        msg = "Downloaded content is not a valid ZIP file"
        raise InvalidZipError(msg)
