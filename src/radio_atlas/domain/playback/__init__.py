"""
Playback domain module.

Provides the client playback engine (candidate failover, stall handling,
reconnect back-off), the mpv media element, and now-playing tracking.
"""

from .candidates import build_stream_candidates, is_hls_url
from .engine import (
    MediaElement,
    MediaSignal,
    PlaybackEngine,
    PlayerStatus,
    reconnect_delay,
)
from .tracker import NowPlayingTracker

__all__ = [
    "build_stream_candidates",
    "is_hls_url",
    "MediaElement",
    "MediaSignal",
    "PlaybackEngine",
    "PlayerStatus",
    "reconnect_delay",
    "NowPlayingTracker",
]
