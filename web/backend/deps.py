from typing import Optional

import httpx
from fastapi import Request

from radio_atlas.core.config import Config, load_config
from radio_atlas.domain.radio.catalog import CatalogCache
from radio_atlas.domain.radio.push_channel import NightridePushChannel
from radio_atlas.domain.radio.resolver import NowPlayingResolver


def get_config(request: Request) -> Config:
    """FastAPI dependency for configuration."""
    config = getattr(request.app.state, "config", None)
    if config is None:
        config = load_config()
        request.app.state.config = config
    return config


def get_client(request: Request) -> httpx.AsyncClient:
    """FastAPI dependency for the shared upstream HTTP client."""
    return request.app.state.client


def get_resolver(request: Request) -> NowPlayingResolver:
    return request.app.state.resolver


def get_catalog(request: Request) -> CatalogCache:
    return request.app.state.catalog


def get_push_channel(request: Request) -> Optional[NightridePushChannel]:
    return getattr(request.app.state, "push_channel", None)
