"""
Stream relay endpoint.

Proxies radio streams for browsers that cannot fetch them directly (mixed
content, missing CORS headers). HLS playlists are rewritten so every segment
is fetched through this endpoint as well.
"""

from typing import Optional
from urllib.parse import urlparse

import httpx
from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import StreamingResponse
from loguru import logger

from radio_atlas.core.config import Config
from radio_atlas.core.errors import UpstreamError
from radio_atlas.domain.relay.playlist import HLS_CONTENT_TYPE, is_hls, rewrite_playlist
from radio_atlas.domain.relay.relay import (
    JitterBuffer,
    open_upstream,
    relay_headers,
    validate_target_url,
)

from ..deps import get_client, get_config
from ..schemas import ErrorResponse

router = APIRouter()


def relay_base_for(request: Request, config: Config) -> str:
    """Public base URL of this relay, used in rewritten playlists."""
    if config.server.public_url:
        return config.server.public_url
    return str(request.base_url).rstrip("/")


@router.get(
    "/stream",
    responses={400: {"model": ErrorResponse}, 403: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
)
async def relay_stream(
    request: Request,
    url: Optional[str] = None,
    client: httpx.AsyncClient = Depends(get_client),
    config: Config = Depends(get_config),
):
    target = validate_target_url(url)
    upstream = await open_upstream(client, target, request.headers.get("range"))

    content_type = upstream.headers.get("content-type", "")
    if is_hls(content_type, urlparse(target).path):
        try:
            await upstream.aread()
        except httpx.HTTPError as e:
            raise UpstreamError(str(e) or "Failed to read playlist")
        finally:
            await upstream.aclose()

        body = rewrite_playlist(upstream.text, str(upstream.url), relay_base_for(request, config))
        logger.debug(f"Rewrote HLS playlist from {upstream.url}")
        return Response(
            content=body,
            media_type=HLS_CONTENT_TYPE,
            headers={"cache-control": "no-store"},
        )

    headers = relay_headers(upstream)
    if upstream.status_code == 204:
        await upstream.aclose()
        return Response(status_code=upstream.status_code, headers=headers)

    logger.info(f"Relaying {upstream.url} ({upstream.status_code}, {headers['content-type']})")
    body = JitterBuffer(
        upstream.aiter_raw(),
        max_bytes=config.relay.buffer_bytes,
        on_close=upstream.aclose,
    )
    return StreamingResponse(body, status_code=upstream.status_code, headers=headers)
