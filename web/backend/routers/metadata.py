"""Now-playing metadata endpoint."""

from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from radio_atlas.core.errors import InvalidURLError
from radio_atlas.domain.radio import push_channel as push
from radio_atlas.domain.radio.push_channel import NightridePushChannel
from radio_atlas.domain.radio.resolver import NowPlayingResolver

from ..deps import get_push_channel, get_resolver
from ..schemas import ErrorResponse, MetadataNotFoundResponse, MetadataResponse

router = APIRouter()


def _cached_push_title(
    channel: Optional[NightridePushChannel], url: str
) -> Optional[str]:
    if channel is None or not push.handles(url):
        return None
    station_id = push.station_id_for(url)
    if not station_id:
        return None
    channel.ensure_started()
    return channel.cached_track(station_id)


@router.get(
    "/metadata",
    response_model=MetadataResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": MetadataNotFoundResponse}},
)
async def get_metadata(
    url: Optional[str] = None,
    resolver: NowPlayingResolver = Depends(get_resolver),
    channel: Optional[NightridePushChannel] = Depends(get_push_channel),
):
    if not url or not url.strip():
        raise InvalidURLError("url is required")
    url = url.strip()

    title = _cached_push_title(channel, url)
    if title:
        return MetadataResponse(title=title, logs=["push: hit"], source="push")

    result = await resolver.resolve(url)
    if result.title:
        return MetadataResponse(title=result.title, logs=result.logs, source=result.source)

    return JSONResponse(
        status_code=404,
        content={"error": "No metadata found", "logs": result.logs},
    )
