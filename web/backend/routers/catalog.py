"""Station catalog endpoint."""

from typing import Optional

from fastapi import APIRouter, Depends

from radio_atlas.domain.radio.catalog import CatalogCache, parse_mode

from ..deps import get_catalog
from ..schemas import ErrorResponse, StationResponse

router = APIRouter()


@router.get(
    "/catalog",
    response_model=list[StationResponse],
    responses={502: {"model": ErrorResponse}},
)
async def get_catalog_stations(
    mode: Optional[str] = None,
    catalog: CatalogCache = Depends(get_catalog),
):
    """Return the deduplicated station catalog. ``mode=fast`` fetches one page."""
    stations = await catalog.get(parse_mode(mode))
    return [station.to_dict() for station in stations]
