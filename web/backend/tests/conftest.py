"""Pytest configuration for backend tests.

Routers run against an httpx MockTransport; every upstream request made by a
test goes through the ``upstream`` fixture.
"""

import sys
from pathlib import Path
from typing import AsyncIterator, Callable

import httpx
import pytest
from fastapi.testclient import TestClient

# Add repository root to path so ``web.backend`` is importable
repo_root = Path(__file__).parent.parent.parent.parent
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))

from radio_atlas.core.config import Config
from radio_atlas.domain.radio.catalog import CatalogCache
from radio_atlas.domain.radio.resolver import NowPlayingResolver
from web.backend.deps import (
    get_catalog,
    get_client,
    get_config,
    get_push_channel,
    get_resolver,
)
from web.backend.main import app

CATALOG_MIRROR = "https://directory.example/json/stations/search"

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


class FakeUpstream:
    """Records upstream requests and answers them with ``handler``."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.handler: Callable[[httpx.Request], httpx.Response] = lambda request: httpx.Response(404)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.handler(request)
        if not response.is_stream_consumed:
            return response
        # httpx reads content= bodies eagerly; re-stream them so aiter_raw works
        return httpx.Response(
            response.status_code,
            headers=response.headers,
            stream=ChunkedByteStream(response.content),
        )

    @property
    def urls(self) -> list[str]:
        return [str(r.url) for r in self.requests]


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def test_config() -> Config:
    return Config()


@pytest.fixture
def client(upstream: FakeUpstream, test_config: Config):
    """TestClient with upstream HTTP and app state replaced by fakes."""
    http = httpx.AsyncClient(transport=httpx.MockTransport(upstream), follow_redirects=True)
    catalog = CatalogCache(http, ttl_seconds=60, endpoints=[CATALOG_MIRROR])

    app.dependency_overrides[get_config] = lambda: test_config
    app.dependency_overrides[get_client] = lambda: http
    app.dependency_overrides[get_resolver] = lambda: NowPlayingResolver(http)
    app.dependency_overrides[get_catalog] = lambda: catalog
    app.dependency_overrides[get_push_channel] = lambda: None
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
