"""
Media-link extraction endpoint.

Forwards to an external extractor service when one is configured, otherwise
resolves the link in-process with yt-dlp.
"""

import asyncio
from typing import Optional

import httpx
from fastapi import APIRouter, Depends, Response
from fastapi.responses import JSONResponse
from loguru import logger

from radio_atlas.core.config import Config
from radio_atlas.core.errors import UpstreamError

from ..deps import get_client, get_config
from ..schemas import ErrorResponse, ExtractResponse

router = APIRouter()


async def _forward(client: httpx.AsyncClient, base: str, url: str) -> Response:
    try:
        upstream = await client.get(f"{base}/extract", params={"url": url})
    except httpx.HTTPError as e:
        raise UpstreamError(str(e) or "Extractor failed")
    return Response(
        content=upstream.content,
        status_code=upstream.status_code,
        media_type=upstream.headers.get("content-type"),
    )


@router.get(
    "/extract",
    response_model=ExtractResponse,
    responses={
        400: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
    },
)
async def extract_media(
    url: Optional[str] = None,
    client: httpx.AsyncClient = Depends(get_client),
    config: Config = Depends(get_config),
):
    from radio_atlas.domain.radio import extractor

    # Deny-list check happens before anything is forwarded
    url = extractor.ensure_extractable(url)

    if config.extractor.url:
        logger.debug(f"Forwarding extraction to {config.extractor.url}: {url}")
        return await _forward(client, config.extractor.url, url)

    extractor.prune_expired_cache()
    stream_url = await asyncio.to_thread(extractor.resolve_stream_url, url)
    if not stream_url:
        return JSONResponse(status_code=404, content={"error": "No stream found"})
    return ExtractResponse(url=stream_url)
