"""
Radio domain module.

Provides station models, the station catalog, ICY metadata decoding,
now-playing probes, the probe resolver chain, and the Nightride push channel.
"""

from .catalog import CatalogCache, fetch_catalog, normalize_catalog, parse_mode
from .icy import (
    DecodeStatus,
    IcyMetadataDecoder,
    decode_metadata_block,
    parse_stream_title,
    read_icy_title,
)
from .models import (
    MetadataFrame,
    NowPlayingState,
    NowPlayingStatus,
    ProbeAttempt,
    ReconnectState,
    ResolveResult,
    Station,
)
from .push_channel import NightridePushChannel
from .resolver import NowPlayingResolver

__all__ = [
    # Models
    "Station",
    "MetadataFrame",
    "NowPlayingState",
    "NowPlayingStatus",
    "ReconnectState",
    "ProbeAttempt",
    "ResolveResult",
    # Catalog
    "CatalogCache",
    "fetch_catalog",
    "normalize_catalog",
    "parse_mode",
    # ICY metadata
    "DecodeStatus",
    "IcyMetadataDecoder",
    "decode_metadata_block",
    "parse_stream_title",
    "read_icy_title",
    # Resolution
    "NowPlayingResolver",
    "NightridePushChannel",
]
