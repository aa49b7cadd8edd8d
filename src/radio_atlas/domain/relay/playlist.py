"""
HLS playlist rewriting.

Every URI line of an m3u8 playlist is resolved against the playlist's own URL
and wrapped as ``{relay_base}/stream?url=<encoded>`` so the player fetches
each segment (and each nested playlist) through the relay. Lines that are
already wrapped are unwrapped first, which makes the rewrite idempotent.
"""

from typing import Optional
from urllib.parse import parse_qs, quote, urljoin, urlparse

HLS_CONTENT_TYPES = (
    "application/vnd.apple.mpegurl",
    "application/x-mpegurl",
    "audio/mpegurl",
    "audio/x-mpegurl",
)

HLS_CONTENT_TYPE = "application/vnd.apple.mpegurl"


def is_hls(content_type: Optional[str], path: str = "") -> bool:
    """Whether a response is an HLS playlist, by content-type or extension."""
    if content_type:
        media_type = content_type.split(";")[0].strip().lower()
        if media_type in HLS_CONTENT_TYPES:
            return True
    return path.lower().endswith(".m3u8")


def relay_wrap(absolute_url: str, relay_base: str) -> str:
    """Build the relay URL for an absolute upstream URL."""
    return f"{relay_base.rstrip('/')}/stream?url={quote(absolute_url, safe='')}"


def unwrap_relay_url(line: str, relay_base: str) -> Optional[str]:
    """Return the inner upstream URL when ``line`` is already relay-wrapped."""
    base = urlparse(relay_base.rstrip("/"))
    try:
        parsed = urlparse(line)
    except ValueError:
        return None
    if (parsed.scheme, parsed.netloc) != (base.scheme, base.netloc):
        return None
    if parsed.path != f"{base.path}/stream":
        return None
    inner = parse_qs(parsed.query).get("url")
    return inner[0] if inner else None


def to_absolute_url(value: str, base: str) -> str:
    try:
        return urljoin(base, value)
    except ValueError:
        return value


def rewrite_playlist(body: str, source_url: str, relay_base: str) -> str:
    """Rewrite every URI line of an HLS playlist through the relay.

    Args:
        body: Playlist text
        source_url: Absolute URL the playlist was fetched from
        relay_base: Public base URL of the relay (no trailing slash needed)

    Returns:
        Rewritten playlist; comment and blank lines are unchanged
    """
    rewritten = []
    for line in body.splitlines(keepends=True):
        content = line.rstrip("\r\n")
        ending = line[len(content):]
        stripped = content.strip()
        if not stripped or stripped.startswith("#"):
            rewritten.append(line)
            continue

        inner = unwrap_relay_url(stripped, relay_base)
        absolute = inner if inner is not None else to_absolute_url(stripped, source_url)
        rewritten.append(relay_wrap(absolute, relay_base) + ending)
    return "".join(rewritten)
