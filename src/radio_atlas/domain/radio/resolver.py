"""
Now-playing resolution.

Runs the probe chain for one stream URL, strictly in order, and stops at the
first probe that yields a title:

    Icecast -> Shoutcast -> AzuraCast -> ICY stream metadata -> site scrape

The site scrape only runs for hosts in the static slug mapping. Each attempt
is recorded in the result's log for diagnostics; logging never changes the
control flow.
"""

from typing import Awaitable, Callable, Optional
from urllib.parse import urlparse

import httpx
from loguru import logger

from . import probes
from .icy import read_icy_title
from .models import ResolveResult

Probe = Callable[[], Awaitable[Optional[str]]]


def split_origin(url: str) -> Optional[tuple[str, str, str]]:
    """Split a stream URL into (origin, host, path); None if not http(s)."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return None
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return None
    return f"{parsed.scheme}://{parsed.netloc}", parsed.netloc, parsed.path or "/"


class NowPlayingResolver:
    """Resolve the current track title for a stream URL.

    The resolver holds no per-station state; one instance may serve any
    number of concurrent requests.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        icy_timeout: float = 10.0,
        scrape_fallback: bool = True,
    ):
        self._client = client
        self.icy_timeout = icy_timeout
        self.scrape_fallback = scrape_fallback

    def _build_chain(
        self, client: httpx.AsyncClient, url: str, result: ResolveResult
    ) -> list[tuple[str, Optional[Probe]]]:
        parts = split_origin(url)
        chain: list[tuple[str, Optional[Probe]]] = []

        if parts:
            origin, host, path = parts
            chain.append(("icecast", lambda: probes.probe_icecast(client, origin, path)))
            chain.append(("shoutcast", lambda: probes.probe_shoutcast(client, origin)))
            chain.append(("azuracast", lambda: probes.probe_azuracast(client, host)))
        else:
            for name in ("icecast", "shoutcast", "azuracast"):
                chain.append((name, None))

        chain.append(
            (
                "icy",
                lambda: read_icy_title(
                    url, client=client, timeout=self.icy_timeout, logs=result.logs
                ),
            )
        )

        slug = probes.scrape_slug_for(url) if self.scrape_fallback else None
        if slug:
            chain.append(("site-scrape", lambda: probes.probe_site_scrape(client, slug)))
        return chain

    async def resolve(self, stream_url: str) -> ResolveResult:
        """Run the probe chain for one station.

        Args:
            stream_url: The station's resolved stream URL

        Returns:
            ResolveResult with the title (or None), its source, and a log line
            per attempt
        """
        result = ResolveResult()
        result.logs.append(f"Fetching: {stream_url}")

        owns_client = self._client is None
        client = self._client or httpx.AsyncClient(follow_redirects=True)
        try:
            for name, probe in self._build_chain(client, stream_url, result):
                if probe is None:
                    result.record(name, "skipped", "not an http(s) URL")
                    continue
                try:
                    title = await probe()
                except Exception:
                    logger.exception(f"Probe {name} raised for {stream_url}")
                    title = None

                if title:
                    result.record(name, "hit", title)
                    result.title = title
                    result.source = name
                    logger.debug(f"Now playing for {stream_url} via {name}: {title}")
                    return result
                result.record(name, "miss")
        finally:
            if owns_client:
                await client.aclose()

        logger.debug(f"No now-playing data for {stream_url}")
        return result
