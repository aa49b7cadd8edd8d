"""
Station catalog fetched from the Radio Browser directory.

Every mirror is queried concurrently; the first non-empty answer wins and the
rest are cancelled. Results are deduplicated by station id, normalized into
Station records and cached per mode with a TTL.
"""

import asyncio
from dataclasses import dataclass
from time import time
from typing import Any, Literal, Optional

import httpx
from loguru import logger

from radio_atlas.core.errors import UpstreamError

from .models import Station

API_URLS = [
    "https://de1.api.radio-browser.info/json/stations/search",
    "https://nl1.api.radio-browser.info/json/stations/search",
    "https://fr1.api.radio-browser.info/json/stations/search",
    "https://all.api.radio-browser.info/json/stations/search",
]

CatalogMode = Literal["fast", "full"]

PAGE_LIMIT = 10000
FAST_LIMIT = 10000
MAX_PAGES = 5
REQUEST_TIMEOUT = 8.0
CACHE_TTL_SECONDS = 30 * 60

DIRECTORY_HEADERS = {
    "Accept": "application/json",
    "User-Agent": "RadioAtlas/1.0",
    "X-User-Agent": "RadioAtlas/1.0",
}


def parse_mode(value: Optional[str]) -> CatalogMode:
    """Anything other than "fast" means a full fetch."""
    return "fast" if value == "fast" else "full"


async def fetch_from_endpoint(
    client: httpx.AsyncClient, endpoint: str, limit: int, max_pages: int
) -> list[dict[str, Any]]:
    """Page through one mirror until a short page or max_pages.

    Raises:
        UpstreamError: On a non-2xx response or a non-list payload
    """
    collected: list[dict[str, Any]] = []
    for page in range(max_pages):
        params = {
            "order": "clickcount",
            "reverse": "true",
            "limit": str(limit),
            "offset": str(page * limit),
        }
        response = await client.get(
            endpoint, params=params, headers=DIRECTORY_HEADERS, timeout=REQUEST_TIMEOUT
        )
        if not response.is_success:
            raise UpstreamError(
                f"Radio Browser error: {response.status_code}", response.status_code
            )
        raw = response.json()
        if not isinstance(raw, list):
            raise UpstreamError("Radio Browser returned an unexpected payload")
        collected.extend(item for item in raw if isinstance(item, dict))
        if len(raw) < limit:
            break
    return collected


def normalize_catalog(raw: list[dict[str, Any]]) -> list[Station]:
    """Deduplicate by stationuuid (first wins) and drop unplayable entries."""
    seen: set[str] = set()
    stations: list[Station] = []
    for item in raw:
        station_id = item.get("stationuuid")
        if not station_id or station_id in seen:
            continue
        seen.add(station_id)
        station = Station.from_api_response(item)
        if station.playback_url:
            stations.append(station)
    return stations


async def first_success(tasks: list[asyncio.Task]) -> Any:
    """Return the first task result that completes without error.

    Remaining tasks are cancelled once a winner is found.

    Raises:
        UpstreamError: When every task fails
    """
    last_error: Optional[BaseException] = None
    pending = set(tasks)
    try:
        while pending:
            done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
            for task in done:
                if task.cancelled():
                    continue
                error = task.exception()
                if error is None:
                    return task.result()
                last_error = error
    finally:
        for task in pending:
            task.cancel()
    raise UpstreamError(str(last_error) if last_error else "All mirrors failed")


async def fetch_catalog(
    client: httpx.AsyncClient, mode: CatalogMode, endpoints: Optional[list[str]] = None
) -> list[Station]:
    """Race all mirrors and normalize the winning response."""
    limit = FAST_LIMIT if mode == "fast" else PAGE_LIMIT
    max_pages = 1 if mode == "fast" else MAX_PAGES

    async def fetch_nonempty(endpoint: str) -> list[dict[str, Any]]:
        data = await fetch_from_endpoint(client, endpoint, limit, max_pages)
        if not data:
            raise UpstreamError(f"Empty response from {endpoint}")
        return data

    tasks = [asyncio.create_task(fetch_nonempty(e)) for e in (endpoints or API_URLS)]
    raw = await first_success(tasks)
    stations = normalize_catalog(raw)
    logger.info(f"Fetched {mode} catalog: {len(raw)} records, {len(stations)} stations")
    return stations


@dataclass
class CacheEntry:
    ts: float
    data: list[Station]


class CatalogCache:
    """Per-mode TTL cache in front of fetch_catalog."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        ttl_seconds: float = CACHE_TTL_SECONDS,
        endpoints: Optional[list[str]] = None,
    ):
        self._client = client
        self.ttl_seconds = ttl_seconds
        self.endpoints = endpoints
        self._entries: dict[str, CacheEntry] = {}

    def clear(self) -> None:
        self._entries.clear()

    async def get(self, mode: CatalogMode) -> list[Station]:
        entry = self._entries.get(mode)
        if entry and time() - entry.ts < self.ttl_seconds:
            logger.debug(f"Catalog cache hit ({mode})")
            return entry.data

        stations = await fetch_catalog(self._client, mode, self.endpoints)
        self._entries[mode] = CacheEntry(ts=time(), data=stations)
        return stations
