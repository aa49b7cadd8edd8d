"""
Radio domain models.

Contains data structures for stations, decoded metadata, and now-playing state.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


def _to_float(value: Any) -> Optional[float]:
    """Parse a coordinate that may be null, a number, or a numeric string."""
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _to_int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


@dataclass(frozen=True)
class Station:
    """Represents a radio station from the directory catalog.

    Immutable once fetched; relay and resolver treat it as read-only input.
    """

    id: str  # Opaque directory identifier (stationuuid)
    stream_url: str
    resolved_stream_url: str
    name: str
    homepage: str = ""
    country_code: str = ""
    tags: tuple[str, ...] = ()
    codec: str = ""
    bitrate_kbps: int = 0
    lat: Optional[float] = None
    lon: Optional[float] = None

    @property
    def playback_url(self) -> str:
        """URL used for playback and metadata lookups."""
        return self.resolved_stream_url or self.stream_url

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> "Station":
        """Create from a directory API record."""
        url = (data.get("url") or "").strip()
        resolved = (data.get("url_resolved") or "").strip() or url
        tags = tuple(
            t.strip() for t in (data.get("tags") or "").split(",") if t.strip()
        )
        return cls(
            id=str(data.get("stationuuid") or ""),
            stream_url=url,
            resolved_stream_url=resolved,
            name=(data.get("name") or "").strip() or "Unknown Station",
            homepage=data.get("homepage") or "",
            country_code=data.get("countrycode") or "",
            tags=tags,
            codec=data.get("codec") or "",
            bitrate_kbps=_to_int(data.get("bitrate")),
            lat=_to_float(data.get("geo_lat")),
            lon=_to_float(data.get("geo_long")),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "streamUrl": self.stream_url,
            "resolvedStreamUrl": self.resolved_stream_url,
            "name": self.name,
            "homepage": self.homepage,
            "countryCode": self.country_code,
            "tags": list(self.tags),
            "codec": self.codec,
            "bitrateKbps": self.bitrate_kbps,
            "lat": self.lat,
            "lon": self.lon,
        }


@dataclass(frozen=True)
class MetadataFrame:
    """One decoded ICY metadata block. Transient, never persisted."""

    raw_bytes: bytes
    text: str
    stream_title: Optional[str]


class NowPlayingStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    UNAVAILABLE = "unavailable"


@dataclass
class NowPlayingState:
    """Now-playing state for the single active station.

    Created when playback starts, reset when playback stops or the station
    changes.
    """

    station_id: Optional[str] = None
    track: Optional[str] = None
    status: NowPlayingStatus = NowPlayingStatus.IDLE
    last_updated_at: Optional[float] = None  # Monotonic seconds of last track


@dataclass
class ReconnectState:
    """Pending reconnect for the playback engine.

    attempt_count drives the back-off and resets on a successful "playing".
    """

    pending_timer_handle: Any = None  # asyncio.TimerHandle
    attempt_count: int = 0


@dataclass(frozen=True)
class ProbeAttempt:
    """Diagnostic record for one resolver attempt."""

    probe: str
    outcome: str  # 'hit' | 'miss' | 'skipped'
    detail: str = ""

    def describe(self) -> str:
        text = f"{self.probe}: {self.outcome}"
        return f"{text} ({self.detail})" if self.detail else text


@dataclass
class ResolveResult:
    """Answer of one resolver run plus the attempt log."""

    title: Optional[str] = None
    source: Optional[str] = None
    attempts: list[ProbeAttempt] = field(default_factory=list)
    logs: list[str] = field(default_factory=list)
    resolved_at: float = field(default_factory=time.time)

    def record(self, probe: str, outcome: str, detail: str = "") -> None:
        attempt = ProbeAttempt(probe, outcome, detail)
        self.attempts.append(attempt)
        self.logs.append(attempt.describe())
