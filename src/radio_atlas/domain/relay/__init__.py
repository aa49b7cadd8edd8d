"""
Relay domain module.

Validates relay targets, selects upstream candidates, forwards stream bodies
through a jitter buffer, and rewrites HLS playlists so segments stay relayed.
"""

from .playlist import (
    HLS_CONTENT_TYPE,
    is_hls,
    relay_wrap,
    rewrite_playlist,
    unwrap_relay_url,
)
from .relay import (
    BLOCKED_HOSTS,
    BUFFER_BYTES,
    JitterBuffer,
    build_upstream_candidates,
    https_variant,
    is_blocked_host,
    open_upstream,
    relay_headers,
    validate_target_url,
)

__all__ = [
    # Playlist rewriting
    "HLS_CONTENT_TYPE",
    "is_hls",
    "relay_wrap",
    "rewrite_playlist",
    "unwrap_relay_url",
    # Relay
    "BLOCKED_HOSTS",
    "BUFFER_BYTES",
    "JitterBuffer",
    "build_upstream_candidates",
    "https_variant",
    "is_blocked_host",
    "open_upstream",
    "relay_headers",
    "validate_target_url",
]
