"""Exception hierarchy for relay, metadata and playback errors."""

from typing import Optional


class RadioAtlasError(Exception):
    """Base exception for Radio Atlas operations."""

    pass


class ValidationError(RadioAtlasError):
    """Raised for bad client input. Never retried."""

    pass


class InvalidURLError(ValidationError):
    """Raised when a URL is missing, unparsable, or not http(s)."""

    pass


class BlockedHostError(ValidationError):
    """Raised when a URL points at a deny-listed host."""

    def __init__(self, host: str, message: Optional[str] = None):
        self.host = host
        super().__init__(message or "blocked host")


class UpstreamError(RadioAtlasError):
    """Raised when an upstream fetch fails after all candidates."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class ClientPlaybackError(RadioAtlasError):
    """Raised by a media element when a source cannot be played."""

    pass
