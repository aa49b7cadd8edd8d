"""ICY in-band metadata decoding.

A stream opened with ``Icy-MetaData: 1`` interleaves a metadata block after
every ``icy-metaint`` bytes of audio. The block starts with one length byte
(value x 16 = block length) followed by ASCII/UTF-8 text such as
``StreamTitle='Artist - Title';StreamUrl='';`` padded with NULs.

Decoding is single-shot: one pass returns the first title, a definitive
"no title" for an empty block, or gives up at a hard byte cap.
"""

import asyncio
import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import httpx
from loguru import logger

from .models import MetadataFrame

# Bytes allowed past the first metadata offset before giving up
MAX_EXTRA_BYTES = 16384

# Largest block a single length byte can announce (255 * 16)
MAX_BLOCK_LENGTH = 4080

_QUOTED_TERMINATED = re.compile(r"StreamTitle='(.*?)';", re.DOTALL)
_QUOTED = re.compile(r"StreamTitle='([^']*)'")
_UNQUOTED = re.compile(r"StreamTitle=([^;]*)")


def parse_stream_title(text: str) -> Optional[str]:
    """Extract the StreamTitle value from a metadata block.

    Prefers the quoted form, tolerating apostrophes inside the title when the
    block is ``';``-terminated, and falls back to ``StreamTitle=...;``.

    Returns:
        Trimmed title, or None when the key is absent or empty
    """
    for pattern in (_QUOTED_TERMINATED, _QUOTED):
        match = pattern.search(text)
        if match:
            return match.group(1).strip() or None

    match = _UNQUOTED.search(text)
    if match:
        return match.group(1).strip().strip("\x00").strip() or None
    return None


class DecodeStatus(str, Enum):
    NEED_MORE = "need_more"
    EMPTY = "empty"  # Zero-length block: no title this cycle
    FRAME = "frame"
    OVERFLOW = "overflow"  # Cap exceeded without a complete block


@dataclass(frozen=True)
class DecodeStep:
    status: DecodeStatus
    frame: Optional[MetadataFrame] = None

    @property
    def done(self) -> bool:
        return self.status is not DecodeStatus.NEED_MORE

    @property
    def title(self) -> Optional[str]:
        return self.frame.stream_title if self.frame else None


def decode_metadata_block(
    buffer: bytes | bytearray, meta_interval: int, max_bytes: Optional[int] = None
) -> DecodeStep:
    """Try to decode the first metadata block from an accumulated buffer.

    Args:
        buffer: Stream bytes received so far, starting at the first audio byte
        meta_interval: Audio bytes between metadata blocks (icy-metaint)
        max_bytes: Hard cap on buffered bytes (default meta_interval + 16384)

    Returns:
        DecodeStep describing whether a frame, an empty block, an overflow, or
        a need for more bytes was found
    """
    if meta_interval <= 0:
        raise ValueError(f"meta_interval must be positive, got {meta_interval}")

    cap = max_bytes if max_bytes is not None else meta_interval + MAX_EXTRA_BYTES

    if len(buffer) >= meta_interval + 1:
        block_length = buffer[meta_interval] * 16
        if block_length == 0:
            return DecodeStep(DecodeStatus.EMPTY)

        start = meta_interval + 1
        end = start + block_length
        if len(buffer) >= end:
            raw = bytes(buffer[start:end])
            text = raw.decode("utf-8", errors="replace").rstrip("\x00")
            return DecodeStep(
                DecodeStatus.FRAME,
                MetadataFrame(raw_bytes=raw, text=text, stream_title=parse_stream_title(text)),
            )

    if len(buffer) > cap:
        return DecodeStep(DecodeStatus.OVERFLOW)
    return DecodeStep(DecodeStatus.NEED_MORE)


class IcyMetadataDecoder:
    """Incremental single-shot decoder.

    Usage:
        decoder = IcyMetadataDecoder(16000)
        for chunk in chunks:
            step = decoder.feed(chunk)
            if step.done:
                break
    """

    def __init__(self, meta_interval: int, max_extra: int = MAX_EXTRA_BYTES):
        if meta_interval <= 0:
            raise ValueError(f"meta_interval must be positive, got {meta_interval}")
        self.meta_interval = meta_interval
        self.max_bytes = meta_interval + max_extra
        self._buffer = bytearray()
        self._result: Optional[DecodeStep] = None

    @property
    def buffered(self) -> int:
        return len(self._buffer)

    def feed(self, chunk: bytes) -> DecodeStep:
        """Append a chunk and attempt a decode.

        Once a terminal step has been produced, further chunks are ignored and
        the same step is returned.
        """
        if self._result is not None:
            return self._result

        self._buffer.extend(chunk)
        step = decode_metadata_block(self._buffer, self.meta_interval, self.max_bytes)
        if step.done:
            self._result = step
        return step


def parse_meta_interval(value: Optional[str]) -> Optional[int]:
    """Parse an icy-metaint header value; None when absent or not positive."""
    if not value:
        return None
    try:
        interval = int(value.split(",")[0].strip())
    except ValueError:
        return None
    return interval if interval > 0 else None


async def _read_title(
    client: httpx.AsyncClient, url: str, logs: list[str]
) -> Optional[str]:
    async with client.stream("GET", url, headers={"Icy-MetaData": "1"}) as response:
        logs.append(f"Status: {response.status_code}")
        if response.status_code >= 400:
            return None

        meta_interval = parse_meta_interval(response.headers.get("icy-metaint"))
        logs.append(f"MetaInt: {response.headers.get('icy-metaint')}")
        if meta_interval is None:
            return None

        decoder = IcyMetadataDecoder(meta_interval)
        async for chunk in response.aiter_raw():
            step = decoder.feed(chunk)
            if not step.done:
                continue
            if step.status is DecodeStatus.EMPTY:
                logs.append("Empty metadata block found")
            elif step.status is DecodeStatus.OVERFLOW:
                logs.append("Max bytes reached")
            elif step.title is None:
                logs.append(f"StreamTitle not found in: {step.frame.text!r}")
            return step.title

        logs.append("Stream ended before metadata block")
        return None


async def read_icy_title(
    url: str,
    client: Optional[httpx.AsyncClient] = None,
    timeout: float = 10.0,
    logs: Optional[list[str]] = None,
) -> Optional[str]:
    """Open a stream and read the current StreamTitle from its ICY metadata.

    Network failures, timeouts and missing icy-metaint all yield None.

    Args:
        url: Stream URL to connect to
        client: Shared AsyncClient (a temporary one is created when None)
        timeout: Overall budget in seconds for connect plus read
        logs: Optional list that receives diagnostic lines

    Returns:
        Current track title, or None
    """
    if logs is None:
        logs = []

    owns_client = client is None
    if owns_client:
        client = httpx.AsyncClient(follow_redirects=True, timeout=timeout)

    try:
        return await asyncio.wait_for(_read_title(client, url, logs), timeout=timeout)
    except asyncio.TimeoutError:
        logs.append(f"Timed out after {timeout}s")
        return None
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        logs.append(f"Error: {e}")
        logger.debug(f"ICY read failed for {url}: {e}")
        return None
    finally:
        if owns_client:
            await client.aclose()
