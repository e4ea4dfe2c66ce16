"""OVapi REST client: scheduled/estimated departures per timing point."""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx

from busline_api.logging import get_logger
from busline_api.models.departures import DepartureResult, ScheduledDeparture, StopInfo
from busline_api.services.errors import DecodeError, FetchError

logger = get_logger(__name__)

DEFAULT_TIMEOUT_SEC = 30


class ScheduleFetchError(FetchError):
    """Raised when the OVapi departures request fails."""


class ScheduleDecodeError(DecodeError):
    """Raised when the OVapi response body is not a JSON object."""


def round_half_up(value: float) -> int:
    """Round to the nearest integer, ties towards positive infinity."""
    return math.floor(value + 0.5)


def _parse_local(value: str) -> Optional[datetime]:
    try:
        return datetime.fromisoformat(value)
    except (TypeError, ValueError):
        return None


def parse_passes(
    tpc: str,
    payload: Dict[str, Any],
    *,
    operator_code: str = "CXX",
    line_public_number: str = "80",
    excluded_line_planning_number: str = "N286",
    transport_type: str = "BUS",
) -> DepartureResult:
    """Turn an OVapi ``/tpc/{tpc}`` payload into the line's departures.

    The TPC object either wraps its passes under ``Passes`` or holds them
    directly. A pass is kept only when it belongs to the tracked operator and
    public line, is not the night variant and is a bus. The stop info comes
    from the first accepted pass.
    """
    timestamp = datetime.now(timezone.utc).isoformat()
    tpc_data = payload.get(tpc)
    if not tpc_data or not isinstance(tpc_data, dict):
        return DepartureResult(stop=None, departures=[], timestamp=timestamp)

    passes = tpc_data.get("Passes") or tpc_data
    stop: Optional[StopInfo] = None
    departures: List[ScheduledDeparture] = []

    for pass_ in passes.values():
        if not isinstance(pass_, dict) or not pass_.get("DataOwnerCode"):
            continue
        if pass_["DataOwnerCode"] != operator_code:
            continue
        if pass_.get("LinePublicNumber") != line_public_number:
            continue
        if pass_.get("LinePlanningNumber") == excluded_line_planning_number:
            continue
        if pass_.get("TransportType") != transport_type:
            continue

        if stop is None:
            stop = StopInfo(
                name=pass_.get("TimingPointName", ""),
                tpc=pass_.get("TimingPointCode") or tpc,
                latitude=float(pass_.get("Latitude") or 0.0),
                longitude=float(pass_.get("Longitude") or 0.0),
            )

        scheduled = pass_.get("TargetDepartureTime") or pass_.get("TargetArrivalTime")
        if not scheduled:
            continue
        expected = pass_.get("ExpectedDepartureTime") or pass_.get("ExpectedArrivalTime")

        scheduled_at = _parse_local(scheduled)
        if scheduled_at is None:
            logger.debug("Unparseable scheduled time", tpc=tpc, value=scheduled)
            continue
        expected_at = _parse_local(expected) if expected else None
        if expected_at is None:
            expected_at = scheduled_at
            expected = scheduled

        delay_minutes = round_half_up((expected_at - scheduled_at).total_seconds() / 60)
        departures.append(
            ScheduledDeparture(
                journey_number=int(pass_.get("JourneyNumber") or 0),
                scheduled_departure=scheduled,
                expected_departure=expected,
                delay_minutes=delay_minutes,
                status=pass_.get("TripStopStatus", ""),
                is_delayed=delay_minutes >= 1,
                destination=pass_.get("DestinationName50", ""),
                line_direction=int(pass_.get("LineDirection") or 0),
            )
        )

    departures.sort(key=lambda dep: datetime.fromisoformat(dep.expected_departure))
    return DepartureResult(stop=stop, departures=departures, timestamp=timestamp)


class OvapiClient:
    """Fetches departures for a timing point from the OVapi REST API."""

    def __init__(
        self,
        base_url: str,
        *,
        operator_code: str = "CXX",
        line_public_number: str = "80",
        excluded_line_planning_number: str = "N286",
        user_agent: str = "",
        timeout_sec: int = DEFAULT_TIMEOUT_SEC,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.operator_code = operator_code
        self.line_public_number = line_public_number
        self.excluded_line_planning_number = excluded_line_planning_number
        self.timeout_sec = timeout_sec
        self.headers = {"Accept-Encoding": "gzip"}
        if user_agent:
            self.headers["User-Agent"] = user_agent
        self._transport = transport

    async def fetch_departures(self, tpc: str) -> DepartureResult:
        """GET ``/tpc/{tpc}`` and parse the tracked line's departures.

        Raises:
            ScheduleFetchError: On network failure or non-success status.
            ScheduleDecodeError: If the body is not a JSON object.
        """
        url = f"{self.base_url}/tpc/{tpc}"
        try:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout_sec),
                follow_redirects=True,
                headers=self.headers,
                transport=self._transport,
            ) as client:
                response = await client.get(url)
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPStatusError as exc:
            msg = f"OVapi returned {exc.response.status_code} for TPC {tpc}"
            raise ScheduleFetchError(msg) from exc
        except httpx.RequestError as exc:
            msg = f"OVapi request failed for TPC {tpc}: {exc}"
            raise ScheduleFetchError(msg) from exc
        except ValueError as exc:
            msg = f"OVapi returned invalid JSON for TPC {tpc}"
            raise ScheduleDecodeError(msg) from exc

        if not isinstance(payload, dict):
            msg = f"OVapi returned unexpected payload type for TPC {tpc}"
            raise ScheduleDecodeError(msg)

        result = parse_passes(
            tpc,
            payload,
            operator_code=self.operator_code,
            line_public_number=self.line_public_number,
            excluded_line_planning_number=self.excluded_line_planning_number,
        )
        logger.debug(
            "OVapi departures fetched",
            tpc=tpc,
            departure_count=len(result.departures),
            stop_found=result.stop is not None,
        )
        return result
