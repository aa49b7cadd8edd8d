"""
Stream relay: target validation, upstream candidate selection, and buffered
body forwarding.

Candidates are attempted one after another (never in parallel) so a station
sees at most one live upstream connection per relay request.
"""

import asyncio
from typing import AsyncIterator, Awaitable, Callable, Optional
from urllib.parse import urlparse, urlunparse

import httpx
from loguru import logger

from radio_atlas.core.errors import BlockedHostError, InvalidURLError, UpstreamError

BUFFER_BYTES = 512 * 1024

BLOCKED_HOSTS = (
    "youtube.com",
    "youtu.be",
    "music.youtube.com",
    "youtube-nocookie.com",
)

# Raw upstream bytes are relayed untouched, so their encoding header goes with them
FORWARDED_HEADERS = ("content-length", "content-range", "accept-ranges", "content-encoding")


def host_of(url: str) -> str:
    try:
        return (urlparse(url).hostname or "").lower()
    except ValueError:
        return ""


def is_blocked_host(url: str) -> bool:
    """True when the URL's host is a deny-listed host or one of its subdomains."""
    host = host_of(url)
    if not host:
        return False
    return any(host == blocked or host.endswith("." + blocked) for blocked in BLOCKED_HOSTS)


def validate_target_url(raw: Optional[str]) -> str:
    """Check a client-supplied relay target.

    Raises:
        InvalidURLError: Missing, unparsable, or non-http(s) URL
        BlockedHostError: Deny-listed host

    Returns:
        The target URL, stripped
    """
    if not raw or not raw.strip():
        raise InvalidURLError("url is required")
    url = raw.strip()
    try:
        parsed = urlparse(url)
    except ValueError:
        raise InvalidURLError("invalid url")
    if not parsed.scheme or not parsed.hostname:
        raise InvalidURLError("invalid url")
    if any(ord(c) < 0x20 or ord(c) == 0x7F for c in url):
        raise InvalidURLError("invalid url")
    if parsed.scheme not in ("http", "https"):
        raise InvalidURLError("invalid protocol")
    if is_blocked_host(url):
        raise BlockedHostError(host_of(url))
    return url


def https_variant(url: str) -> str:
    """The same URL with its scheme upgraded to https."""
    parsed = urlparse(url)
    return urlunparse(parsed._replace(scheme="https"))


def build_upstream_candidates(url: str) -> list[str]:
    """Ordered upstream URLs to try: https upgrade first for plain http."""
    if urlparse(url).scheme == "http":
        return [https_variant(url), url]
    return [url]


async def open_upstream(
    client: httpx.AsyncClient,
    target: str,
    range_header: Optional[str] = None,
) -> httpx.Response:
    """Open the first upstream candidate that answers 2xx.

    The returned response is streaming and must be closed by the caller.

    Raises:
        UpstreamError: When every candidate fails, carrying the last error
    """
    # Ask for the body as stored; aiter_raw would otherwise relay gzip bytes
    headers = {"Accept-Encoding": "identity"}
    if range_header:
        headers["Range"] = range_header

    last_error: Optional[str] = None
    for candidate in build_upstream_candidates(target):
        try:
            request = client.build_request("GET", candidate, headers=headers)
        except httpx.InvalidURL as e:
            raise InvalidURLError("invalid url") from e
        try:
            response = await client.send(request, stream=True)
        except httpx.HTTPError as e:
            last_error = str(e) or type(e).__name__
            logger.warning(f"Upstream candidate failed: {candidate}: {last_error}")
            continue

        if not response.is_success:
            last_error = f"Upstream {response.status_code}"
            logger.warning(f"Upstream candidate rejected: {candidate}: {last_error}")
            await response.aclose()
            continue

        logger.debug(f"Upstream selected: {candidate} ({response.status_code})")
        return response

    raise UpstreamError(last_error or "Upstream failed")


def relay_headers(upstream: httpx.Response) -> dict[str, str]:
    """Headers forwarded to the client for a streamed (non-HLS) body."""
    headers = {
        name: upstream.headers[name]
        for name in FORWARDED_HEADERS
        if name in upstream.headers
    }
    headers["content-type"] = upstream.headers.get("content-type") or "application/octet-stream"
    headers["cache-control"] = "no-store"
    return headers


_EOF = object()


class JitterBuffer:
    """Bounded byte buffer between an upstream body and the client.

    A background task keeps reading upstream while the client is slow, up to
    ``max_bytes`` buffered; short upstream stalls are absorbed by data already
    buffered. Upstream read errors end the stream instead of raising into the
    response.
    """

    def __init__(
        self,
        source: AsyncIterator[bytes],
        max_bytes: int = BUFFER_BYTES,
        on_close: Optional[Callable[[], Awaitable[None]]] = None,
    ):
        self._source = source
        self.max_bytes = max_bytes
        self._on_close = on_close
        self._queue: asyncio.Queue = asyncio.Queue()
        self._space = asyncio.Condition()
        self._buffered = 0
        self.error: Optional[BaseException] = None

    @property
    def buffered(self) -> int:
        return self._buffered

    async def _pump(self) -> None:
        try:
            async for chunk in self._source:
                if not chunk:
                    continue
                async with self._space:
                    await self._space.wait_for(lambda: self._buffered < self.max_bytes)
                    self._buffered += len(chunk)
                self._queue.put_nowait(chunk)
        except (httpx.HTTPError, httpx.StreamError) as e:
            self.error = e
            logger.warning(f"Upstream read error, ending relay stream: {e}")
        finally:
            self._queue.put_nowait(_EOF)

    async def _iterate(self) -> AsyncIterator[bytes]:
        pump = asyncio.create_task(self._pump())
        try:
            while True:
                chunk = await self._queue.get()
                if chunk is _EOF:
                    break
                async with self._space:
                    self._buffered -= len(chunk)
                    self._space.notify_all()
                yield chunk
        finally:
            pump.cancel()
            try:
                await pump
            except asyncio.CancelledError:
                pass
            if self._on_close is not None:
                await self._on_close()

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self._iterate()
