"""Shared fixtures for domain tests."""

from typing import AsyncIterator, Callable

import httpx
import pytest

# Odd size so bodies split at awkward offsets
CHUNK_SIZE = 7


class ChunkedByteStream(httpx.AsyncByteStream):
    """Response body delivered in small chunks, as it would arrive off the network."""

    def __init__(self, data: bytes, chunk_size: int = CHUNK_SIZE):
        self.data = data
        self.chunk_size = chunk_size

    async def __aiter__(self) -> AsyncIterator[bytes]:
        for start in range(0, len(self.data), self.chunk_size):
            yield self.data[start : start + self.chunk_size]


def as_network_response(response: httpx.Response) -> httpx.Response:
    """Rebuild a response whose body httpx already read when it was constructed.

    ``httpx.Response(content=...)`` loads its body eagerly, after which
    ``aiter_raw`` raises StreamConsumed. Streaming bodies pass through as-is.
    """
    if not response.is_stream_consumed:
        return response
    return httpx.Response(
        response.status_code,
        headers=response.headers,
        stream=ChunkedByteStream(response.content),
    )


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def mock_client() -> Callable[[Callable[[httpx.Request], httpx.Response]], httpx.AsyncClient]:
    """Build an AsyncClient whose requests are answered by ``handler``."""

    def factory(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
        def transport_handler(request: httpx.Request) -> httpx.Response:
            return as_network_response(handler(request))

        return httpx.AsyncClient(
            transport=httpx.MockTransport(transport_handler), follow_redirects=True
        )

    return factory


@pytest.fixture
def icy_stream() -> Callable[[int, str], bytes]:
    """Audio bytes followed by one ICY metadata block carrying ``text``."""

    def build(meta_interval: int, text: str, audio_byte: bytes = b"\x11") -> bytes:
        payload = text.encode("utf-8")
        blocks = (len(payload) + 15) // 16
        return (
            audio_byte * meta_interval
            + bytes([blocks])
            + payload.ljust(blocks * 16, b"\x00")
        )

    return build
