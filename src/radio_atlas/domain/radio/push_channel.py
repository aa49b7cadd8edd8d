"""
Server-push now-playing channel for Nightride FM.

Nightride publishes "station -> track" events for all of its stations over a
single server-sent-events stream. One shared connection serves every
subscribed station; events are demultiplexed by the station id embedded in
each stream URL (``/<id>.mp3``) and fanned out to per-station listeners.
"""

import asyncio
import json
import re
from typing import Callable, Optional
from urllib.parse import urlparse

import httpx
from loguru import logger

from radio_atlas.core.http import create_push_client

from .probes import build_track

NIGHTRIDE_META_URL = "https://nightride.fm/meta"
RECONNECT_DELAY_SECONDS = 5.0

TrackListener = Callable[[str, Optional[str]], None]

_STATION_PATH = re.compile(r"/([^/]+)\.(mp3|m3u8|flac)$", re.IGNORECASE)


def handles(url: str) -> bool:
    """Whether a stream URL is served by the push channel."""
    return "nightride.fm" in (url or "")


def station_id_for(url: str) -> Optional[str]:
    """Extract the Nightride station id from a stream URL."""
    try:
        path = urlparse(url).path
    except ValueError:
        return None
    match = _STATION_PATH.search(path)
    return match.group(1) if match else None


def parse_event(data: str) -> list[tuple[str, str]]:
    """Decode one SSE data payload into (station, track) pairs.

    Keepalives and malformed payloads yield an empty list.
    """
    if not data or data == "keepalive":
        return []
    try:
        payload = json.loads(data)
    except json.JSONDecodeError:
        logger.debug(f"Ignoring malformed push payload: {data[:80]!r}")
        return []

    items = payload if isinstance(payload, list) else [payload]
    events = []
    for item in items:
        if not isinstance(item, dict):
            continue
        station = item.get("station")
        if not isinstance(station, str) or not station:
            continue
        track = build_track(item.get("artist"), item.get("title"))
        if track:
            events.append((station, track))
    return events


class NightridePushChannel:
    """Owns the single push connection and its listener registry.

    Lifecycle is explicit: ``ensure_started()`` opens the connection task if it
    is not running, ``aclose()`` cancels it and drops all listeners.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        url: str = NIGHTRIDE_META_URL,
        reconnect_delay: float = RECONNECT_DELAY_SECONDS,
    ):
        self.url = url
        self.reconnect_delay = reconnect_delay
        self._client = client
        self._owns_client = client is None
        self._listeners: dict[str, list[TrackListener]] = {}
        self._cache: dict[str, str] = {}
        self._task: Optional[asyncio.Task] = None
        self._connected = False
        self._failed = False
        self._closed = False

    @property
    def healthy(self) -> bool:
        """True while the connection task runs and has not failed since connecting."""
        return self.running and not self._failed

    @property
    def connected(self) -> bool:
        return self.running and self._connected

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def cached_track(self, station_id: str) -> Optional[str]:
        return self._cache.get(station_id)

    def listener_count(self, station_id: Optional[str] = None) -> int:
        if station_id is not None:
            return len(self._listeners.get(station_id, []))
        return sum(len(v) for v in self._listeners.values())

    def ensure_started(self) -> None:
        """Start the shared connection if it is not already running."""
        if self._closed:
            raise RuntimeError("Push channel has been closed")
        if self.running:
            return
        if self._client is None:
            self._client = create_push_client()
        self._task = asyncio.create_task(self._run(), name="nightride-push-channel")
        logger.info(f"Push channel started: {self.url}")

    def subscribe(self, station_id: str, listener: TrackListener) -> Callable[[], None]:
        """Register a listener for one station.

        The last known track is delivered immediately when cached.

        Returns:
            Callable that removes the listener
        """
        self._listeners.setdefault(station_id, []).append(listener)
        self.ensure_started()

        cached = self._cache.get(station_id)
        if cached:
            listener(station_id, cached)

        def unsubscribe() -> None:
            listeners = self._listeners.get(station_id)
            if listeners and listener in listeners:
                listeners.remove(listener)
                if not listeners:
                    del self._listeners[station_id]

        return unsubscribe

    def dispatch(self, station_id: str, track: str) -> None:
        """Deliver one event to the listeners of a station."""
        self._cache[station_id] = track
        # Snapshot so listeners may unsubscribe during dispatch
        for listener in list(self._listeners.get(station_id, ())):
            try:
                listener(station_id, track)
            except Exception:
                logger.exception(f"Push listener failed for station {station_id}")

    async def _consume(self) -> None:
        async with self._client.stream(
            "GET", self.url, headers={"Accept": "text/event-stream"}
        ) as response:
            response.raise_for_status()
            self._connected = True
            self._failed = False
            logger.debug("Push channel connected")
            data_lines: list[str] = []
            async for line in response.aiter_lines():
                if line.startswith("data:"):
                    data_lines.append(line[5:].lstrip())
                elif line == "" and data_lines:
                    for station, track in parse_event("\n".join(data_lines)):
                        self.dispatch(station, track)
                    data_lines = []
            if data_lines:
                for station, track in parse_event("\n".join(data_lines)):
                    self.dispatch(station, track)

    async def _run(self) -> None:
        while not self._closed:
            try:
                await self._consume()
                logger.info("Push channel stream ended, reconnecting")
            except asyncio.CancelledError:
                raise
            except (httpx.HTTPError, httpx.StreamError) as e:
                self._failed = True
                logger.warning(f"Push channel error: {e}")
            finally:
                self._connected = False
            await asyncio.sleep(self.reconnect_delay)

    async def aclose(self) -> None:
        """Stop the connection and forget all listeners."""
        self._closed = True
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        self._listeners.clear()
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
        logger.info("Push channel closed")
