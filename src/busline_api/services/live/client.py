"""Consumer side of the live channel: SSE with degradation to polling."""

from __future__ import annotations

import asyncio
import inspect
import json
import time
from collections import deque
from contextlib import suppress
from enum import Enum
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Deque, Dict, Optional, Union

import httpx

from busline_api.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

logger = get_logger(__name__)

STREAM_PATH = "/api/vehicles/stream"
VEHICLES_PATH = "/api/vehicles"

UpdateCallback = Callable[[Dict[str, Any]], Union[None, Awaitable[None]]]


class ConnectionState(str, Enum):
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    POLLING = "polling"


class ConnectionWatchdog:
    """Decides when the live channel is unusable and polling takes over.

    Two rules lead to POLLING, which is final for the session:
    ``max_rapid_failures`` stream failures within ``rapid_failure_window_sec``,
    or no ``init`` event within ``init_timeout_sec`` of connecting.
    """

    def __init__(
        self,
        max_rapid_failures: int = 3,
        rapid_failure_window_sec: float = 5.0,
        init_timeout_sec: float = 10.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_rapid_failures = max_rapid_failures
        self.rapid_failure_window_sec = rapid_failure_window_sec
        self.init_timeout_sec = init_timeout_sec
        self._clock = clock
        self._failures: Deque[float] = deque()
        self.state = ConnectionState.CONNECTING

    @property
    def is_polling(self) -> bool:
        return self.state is ConnectionState.POLLING

    def connecting(self) -> None:
        if self.is_polling:
            return
        if self.state is not ConnectionState.RECONNECTING:
            self.state = ConnectionState.CONNECTING

    def record_init(self) -> None:
        if self.is_polling:
            return
        self.state = ConnectionState.CONNECTED
        self._failures.clear()

    def record_message(self) -> None:
        if not self.is_polling:
            self.state = ConnectionState.CONNECTED

    def record_failure(self, now: Optional[float] = None) -> ConnectionState:
        """Register a stream error or close and return the resulting state."""
        if self.is_polling:
            return self.state
        now = self._clock() if now is None else now
        self._failures.append(now)
        while self._failures and now - self._failures[0] >= self.rapid_failure_window_sec:
            self._failures.popleft()

        if len(self._failures) >= self.max_rapid_failures:
            self.fall_back("rapid-failures")
        else:
            self.state = ConnectionState.RECONNECTING
        return self.state

    def fall_back(self, reason: str) -> None:
        if not self.is_polling:
            logger.warning("Live channel unusable, falling back to polling", reason=reason)
        self.state = ConnectionState.POLLING


async def iter_sse(lines: AsyncIterator[str]) -> AsyncIterator[tuple[str, str]]:
    """Parse SSE lines into ``(event, data)`` pairs, skipping comments."""
    event = "message"
    data: list[str] = []
    async for line in lines:
        if line == "":
            if data:
                yield event, "\n".join(data)
            event, data = "message", []
            continue
        if line.startswith(":"):
            continue
        field, _, value = line.partition(":")
        value = value[1:] if value.startswith(" ") else value
        if field == "event":
            event = value
        elif field == "data":
            data.append(value)
    if data:
        yield event, "\n".join(data)


class LiveChannelClient:
    """Follows the vehicle stream and hands every payload to ``on_update``.

    Delivered payloads always have the full ``{vehicles, route, stale,
    timestamp}`` shape: ``vehicles`` events are merged with the route from
    the last ``init`` or polled response. Once the watchdog falls back, the
    client polls the REST endpoint and never reopens the stream.
    """

    def __init__(
        self,
        base_url: str,
        on_update: UpdateCallback,
        watchdog: Optional[ConnectionWatchdog] = None,
        poll_interval_sec: float = 60.0,
        reconnect_delay_sec: float = 1.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = base_url
        self._on_update = on_update
        self.watchdog = watchdog or ConnectionWatchdog()
        self.poll_interval_sec = poll_interval_sec
        self.reconnect_delay_sec = reconnect_delay_sec
        self._transport = transport
        self._route: Optional[Dict[str, Any]] = None
        self.stream_attempts = 0
        self.poll_count = 0

    @property
    def state(self) -> ConnectionState:
        return self.watchdog.state

    async def run(self) -> None:
        """Run until cancelled."""
        async with httpx.AsyncClient(
            base_url=self._base_url,
            transport=self._transport,
            timeout=httpx.Timeout(10.0, read=None),
        ) as client:
            await self.fetch_vehicles(client)
            while not self.watchdog.is_polling:
                await self._stream_session(client)
                if not self.watchdog.is_polling:
                    await asyncio.sleep(self.reconnect_delay_sec)
            await self._poll_loop(client)

    async def fetch_vehicles(self, client: httpx.AsyncClient) -> bool:
        """One REST fetch of the vehicles endpoint; errors are logged."""
        try:
            response = await client.get(VEHICLES_PATH)
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Vehicle fetch failed", error=str(exc))
            return False
        self.poll_count += 1
        self._route = payload.get("route", self._route)
        await self._deliver(payload)
        return True

    async def _poll_loop(self, client: httpx.AsyncClient) -> None:
        logger.info("Polling vehicles", interval_sec=self.poll_interval_sec)
        while True:
            await self.fetch_vehicles(client)
            await asyncio.sleep(self.poll_interval_sec)

    async def _stream_session(self, client: httpx.AsyncClient) -> None:
        self.watchdog.connecting()
        self.stream_attempts += 1
        init_received = asyncio.Event()
        reader = asyncio.create_task(self._read_stream(client, init_received))
        init_waiter = asyncio.create_task(init_received.wait())
        try:
            done, _pending = await asyncio.wait(
                {reader, init_waiter},
                timeout=self.watchdog.init_timeout_sec,
                return_when=asyncio.FIRST_COMPLETED,
            )
            if not done:
                self.watchdog.fall_back("init-timeout")
                return

            try:
                await reader
            except (httpx.HTTPError, OSError) as exc:
                logger.warning("Live stream failed", error=str(exc))
            else:
                logger.info("Live stream closed by server")
            self.watchdog.record_failure()
        finally:
            for task in (reader, init_waiter):
                if not task.done():
                    task.cancel()
                    with suppress(asyncio.CancelledError):
                        await task

    async def _read_stream(self, client: httpx.AsyncClient, init_received: asyncio.Event) -> None:
        async with client.stream(
            "GET", STREAM_PATH, headers={"Accept": "text/event-stream"}
        ) as response:
            response.raise_for_status()
            async for event, data in iter_sse(response.aiter_lines()):
                try:
                    payload = json.loads(data)
                except ValueError:
                    logger.debug("Ignoring unparseable live event", live_event=event)
                    continue

                if event == "init":
                    self._route = payload.get("route")
                    self.watchdog.record_init()
                    init_received.set()
                    await self._deliver(payload)
                elif event == "vehicles":
                    self.watchdog.record_message()
                    if self._route is not None:
                        await self._deliver({**payload, "route": self._route})

    async def _deliver(self, payload: Dict[str, Any]) -> None:
        result = self._on_update(payload)
        if inspect.isawaitable(result):
            await result
