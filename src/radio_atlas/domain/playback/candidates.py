"""Candidate stream URLs for one playback attempt.

Mirrors the relay's own upgrade rule on the client side: plain http streams
are tried over https first, then through the relay (or directly, when the
player is allowed to fetch insecure URLs).
"""

from typing import Optional
from urllib.parse import urlparse

from radio_atlas.domain.relay.playlist import relay_wrap
from radio_atlas.domain.relay.relay import https_variant


def is_hls_url(url: str) -> bool:
    return ".m3u8" in url.lower()


def build_stream_candidates(
    url: str,
    relay_base: Optional[str] = None,
    allow_insecure: bool = False,
) -> tuple[str, ...]:
    """Ordered candidate URLs for a station stream.

    Args:
        url: The station's resolved stream URL
        relay_base: Relay base URL, when a relay is available
        allow_insecure: Whether plain http may be fetched directly

    Returns:
        Immutable tuple; the first entry is always attempted first
    """
    if not url:
        return ()
    try:
        scheme = urlparse(url).scheme
    except ValueError:
        return ()

    if scheme == "https":
        return (url,)
    if scheme != "http":
        return ()

    upgraded = https_variant(url)
    if relay_base:
        return (upgraded, relay_wrap(url, relay_base))
    if allow_insecure:
        return (upgraded, url)
    return (upgraded,)
