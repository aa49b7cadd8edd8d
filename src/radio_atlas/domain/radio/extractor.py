"""Media-link resolution for station URLs that are not direct audio.

Extracts playable stream URLs from page links (SoundCloud, Mixcloud, Twitch,
etc.) using yt-dlp, with short-lived caching since extracted URLs expire.
Deny-listed video hosts are rejected before any extraction.
"""

from time import time
from typing import Optional

import yt_dlp
from loguru import logger

from radio_atlas.core.errors import BlockedHostError, InvalidURLError
from radio_atlas.domain.relay.relay import host_of, is_blocked_host

# Cache extracted URLs for 10 minutes (signed media URLs typically expire after ~15 min)
_stream_cache: dict[str, tuple[str, float]] = {}  # source_url -> (stream_url, expires_at)
CACHE_TTL_SECONDS = 600


def ensure_extractable(url: Optional[str]) -> str:
    """Validate an extraction target.

    Raises:
        InvalidURLError: When the URL is missing
        BlockedHostError: When the host is deny-listed (any scheme or path)
    """
    if not url or not url.strip():
        raise InvalidURLError("url is required")
    url = url.strip()
    if is_blocked_host(url):
        raise BlockedHostError(host_of(url))
    return url


def resolve_stream_url(source_url: str) -> Optional[str]:
    """Resolve a page link to a playable stream URL using yt-dlp.

    Args:
        source_url: Page or permalink URL

    Returns:
        Direct stream URL or None if resolution fails
    """
    if not source_url:
        return None

    if source_url in _stream_cache:
        stream_url, expires_at = _stream_cache[source_url]
        if time() < expires_at:
            logger.debug(f"Stream URL cache hit for {source_url}")
            return stream_url
        del _stream_cache[source_url]

    ydl_opts = {
        "quiet": True,
        "no_warnings": True,
        "format": "bestaudio/best",
        "skip_download": True,
    }

    try:
        with yt_dlp.YoutubeDL(ydl_opts) as ydl:
            info = ydl.extract_info(source_url, download=False)
    except yt_dlp.utils.DownloadError as e:
        logger.warning(f"yt-dlp download error for {source_url}: {e}")
        return None

    if not info:
        logger.warning(f"yt-dlp returned no info for {source_url}")
        return None

    stream_url = info.get("url")
    if not stream_url:
        # Some extractors put URL in 'formats' list
        formats = info.get("formats") or []
        audio_formats = [f for f in formats if f.get("acodec") not in (None, "none")]
        chosen = audio_formats or formats
        if chosen:
            stream_url = chosen[-1].get("url")

    if not stream_url:
        logger.warning(f"No stream URL found in yt-dlp response for {source_url}")
        return None

    _stream_cache[source_url] = (stream_url, time() + CACHE_TTL_SECONDS)
    logger.debug(f"Resolved stream URL for {source_url}")
    return stream_url


def clear_stream_cache() -> None:
    """Clear the extracted URL cache."""
    _stream_cache.clear()
    logger.debug("Stream URL cache cleared")


def prune_expired_cache() -> int:
    """Remove expired entries from cache.

    Returns:
        Number of entries removed
    """
    now = time()
    expired_keys = [k for k, (_, exp) in _stream_cache.items() if exp <= now]
    for key in expired_keys:
        del _stream_cache[key]
    if expired_keys:
        logger.debug(f"Pruned {len(expired_keys)} expired stream URL cache entries")
    return len(expired_keys)
