from pydantic import BaseModel
from typing import Optional


class ErrorResponse(BaseModel):
    error: str


class MetadataResponse(BaseModel):
    title: str
    logs: list[str]
    source: Optional[str] = None  # Provider that produced the title


class MetadataNotFoundResponse(BaseModel):
    error: str = "No metadata found"
    logs: list[str]


class ExtractResponse(BaseModel):
    url: str


class StationResponse(BaseModel):
    """Catalog entry as served to clients."""

    id: str
    streamUrl: str
    resolvedStreamUrl: str
    name: str
    homepage: str = ""
    countryCode: str = ""
    tags: list[str] = []
    codec: str = ""
    bitrateKbps: int = 0
    lat: Optional[float] = None
    lon: Optional[float] = None


class HealthResponse(BaseModel):
    status: str
