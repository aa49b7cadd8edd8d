"""Text passthrough for status pages that browsers cannot fetch cross-origin."""

from typing import Optional

import httpx
from fastapi import APIRouter, Depends, Response

from radio_atlas.core.errors import InvalidURLError, UpstreamError
from radio_atlas.domain.relay.relay import validate_target_url

from ..deps import get_client
from ..schemas import ErrorResponse

router = APIRouter()


@router.get(
    "/fetch",
    responses={400: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
)
async def fetch_text(
    url: Optional[str] = None,
    client: httpx.AsyncClient = Depends(get_client),
):
    target = validate_target_url(url)
    try:
        upstream = await client.get(target)
    except httpx.InvalidURL as e:
        raise InvalidURLError("invalid url") from e
    except httpx.HTTPError as e:
        raise UpstreamError(str(e) or "Failed")
    return Response(
        content=upstream.text,
        status_code=upstream.status_code,
        media_type=upstream.headers.get("content-type"),
    )
