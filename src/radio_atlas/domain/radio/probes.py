"""
Now-playing probes for third-party station status endpoints.

Each probe understands one wire shape (Icecast JSON, Shoutcast v1 text,
AzuraCast JSON, scraped HTML) and returns a track string or None. Probes
never raise: network errors, bad status codes and unexpected payload shapes
all mean "this probe has nothing".
"""

import re
from typing import Any, Optional
from urllib.parse import urlparse

import httpx
from loguru import logger

ICECAST_TIMEOUT = 4.0
SHOUTCAST_TIMEOUT = 4.0
AZURACAST_TIMEOUT = 6.0
SCRAPE_TIMEOUT = 10.0

SCRAPE_BASE_URL = "https://top-radio.ru/web"

# Static host -> aggregator slug mapping for the scrape fallback
SCRAPE_SLUGS: dict[str, str] = {
    "kazak.fm": "kazak-fm",
    "radio.kazak.fm": "kazak-fm",
}

SCRAPE_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept-Language": "ru-RU,ru;q=0.9,en-US;q=0.8,en;q=0.7",
}


def build_track(artist: Any, title: Any) -> Optional[str]:
    """Join artist and title as "Artist - Title", skipping blanks."""
    parts = [str(p).strip() for p in (artist, title) if isinstance(p, str) and p.strip()]
    if not parts:
        return None
    return " - ".join(parts)


# === Pure parsers ===


def parse_icecast_status(payload: Any, path: str) -> Optional[str]:
    """Pick the mount matching ``path`` from an Icecast status-json payload.

    ``icestats.source`` is an object for a single mount and an array for
    several; either shape is accepted.
    """
    if not isinstance(payload, dict):
        return None
    icestats = payload.get("icestats")
    if not isinstance(icestats, dict):
        return None
    source = icestats.get("source")
    if not source:
        return None

    sources = [s for s in (source if isinstance(source, list) else [source]) if isinstance(s, dict)]
    if not sources:
        return None

    best = sources[0]
    if path:
        for entry in sources:
            listenurl = entry.get("listenurl")
            if isinstance(listenurl, str) and (listenurl.endswith(path) or path in listenurl):
                best = entry
                break

    artist = best.get("artist")
    title = best.get("title")
    if isinstance(artist, str) and artist.strip() and isinstance(title, str) and title.strip():
        return build_track(artist, title)
    if isinstance(title, str) and title.strip():
        return title.strip()
    return None


_BODY = re.compile(r"<body[^>]*>(.*?)</body>", re.IGNORECASE | re.DOTALL)


def parse_shoutcast_status(text: str) -> Optional[str]:
    """Read the song title from a Shoutcast v1 ``7.html`` body.

    The body looks like ``123,1,385,4000,20,1024,The Current Song``; the title
    is field 6 and may itself contain commas.
    """
    match = _BODY.search(text)
    content = match.group(1) if match else text
    parts = content.strip().split(",")
    if len(parts) < 7:
        return None
    title = ",".join(parts[6:]).strip()
    return title or None


def parse_azuracast_nowplaying(payload: Any) -> Optional[str]:
    """Extract the current song from an AzuraCast nowplaying payload."""
    if isinstance(payload, list):
        payload = payload[0] if payload else None
    if not isinstance(payload, dict):
        return None
    now_playing = payload.get("now_playing")
    if not isinstance(now_playing, dict):
        return None
    song = now_playing.get("song")
    if not isinstance(song, dict):
        return None

    text = song.get("text")
    if isinstance(text, str) and text.strip():
        return text.strip()
    return build_track(song.get("artist"), song.get("title"))


_SCRAPE_SECTION = re.compile(
    r"Плейлист радиостанции.*?Что сейчас играет:(.*?)Весь плей-лист",
    re.IGNORECASE | re.DOTALL,
)
_SCRAPE_PAIR = re.compile(
    r'class="artist"[^>]*>([^<]+).*?class="song"[^>]*>([^<]+)',
    re.IGNORECASE | re.DOTALL,
)
_SCRAPE_LOOSE = re.compile(
    r'class="artist">([^<]+)</span>.*?class="song">([^<]+)</span>',
    re.IGNORECASE | re.DOTALL,
)


def parse_site_scrape(html: str) -> Optional[str]:
    """Extract the first artist/song pair from an aggregator station page."""
    section = _SCRAPE_SECTION.search(html)
    content = section.group(1) if section else html

    match = _SCRAPE_PAIR.search(content)
    if match:
        track = build_track(match.group(1), match.group(2))
        if track and match.group(1).strip() and match.group(2).strip():
            return track

    match = _SCRAPE_LOOSE.search(html)
    if match and match.group(1).strip() and match.group(2).strip():
        return build_track(match.group(1), match.group(2))
    return None


def scrape_slug_for(url: str) -> Optional[str]:
    """Return the aggregator slug for a stream host, if it is mapped."""
    try:
        host = (urlparse(url).hostname or "").lower()
    except ValueError:
        return None
    if not host:
        return None
    for key, slug in SCRAPE_SLUGS.items():
        if key in host:
            return slug
    return None


# === Probes ===


async def _get(
    client: httpx.AsyncClient, url: str, timeout: float, headers: Optional[dict] = None
) -> Optional[httpx.Response]:
    try:
        response = await client.get(url, timeout=timeout, headers=headers)
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        logger.debug(f"Probe request failed for {url}: {e}")
        return None
    if not response.is_success:
        logger.debug(f"Probe {url} returned {response.status_code}")
        return None
    return response


def _json(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


async def probe_icecast(client: httpx.AsyncClient, origin: str, path: str) -> Optional[str]:
    """Icecast ``/status-json.xsl`` probe."""
    response = await _get(client, f"{origin}/status-json.xsl", ICECAST_TIMEOUT)
    if response is None:
        return None
    return parse_icecast_status(_json(response), path)


async def probe_shoutcast(client: httpx.AsyncClient, origin: str) -> Optional[str]:
    """Shoutcast v1 ``/7.html`` probe."""
    response = await _get(client, f"{origin}/7.html", SHOUTCAST_TIMEOUT)
    if response is None:
        return None
    return parse_shoutcast_status(response.text)


async def probe_azuracast(client: httpx.AsyncClient, host: str) -> Optional[str]:
    """AzuraCast ``/api/nowplaying`` probe (station 1 first, then all)."""
    for endpoint in (
        f"https://{host}/api/nowplaying/1",
        f"https://{host}/api/nowplaying",
    ):
        response = await _get(client, endpoint, AZURACAST_TIMEOUT)
        if response is None:
            continue
        track = parse_azuracast_nowplaying(_json(response))
        if track:
            return track
    return None


async def probe_site_scrape(client: httpx.AsyncClient, slug: str) -> Optional[str]:
    """Scrape the aggregator page for a mapped station."""
    response = await _get(
        client, f"{SCRAPE_BASE_URL}/{slug}", SCRAPE_TIMEOUT, headers=SCRAPE_HEADERS
    )
    if response is None:
        return None
    return parse_site_scrape(response.text)
