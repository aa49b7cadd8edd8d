"""
Client playback engine.

One state machine owns every transition of a single media element: errors walk
the station's candidate URLs, short stalls count as buffering, and once every
candidate has failed a reconnect is scheduled with a capped back-off.

Timers run on the asyncio loop. Each timer captures the session token that was
current when it was armed and does nothing if the session has changed since.
"""

import asyncio
from enum import Enum
from typing import Callable, Optional, Protocol

from loguru import logger

from radio_atlas.core.errors import ClientPlaybackError
from radio_atlas.domain.radio.models import ReconnectState, Station

from .candidates import build_stream_candidates, is_hls_url

RECONNECT_BASE_SECONDS = 2.0
RECONNECT_CAP_SECONDS = 15.0
STALL_GRACE_SECONDS = 5.0


class PlayerStatus(str, Enum):
    IDLE = "idle"
    BUFFERING = "buffering"
    PLAYING = "playing"
    PAUSED = "paused"
    ERROR = "error"


class MediaSignal(str, Enum):
    """Events reported by a media element."""

    PLAYING = "playing"
    PAUSED = "paused"
    WAITING = "waiting"
    STALLED = "stalled"
    ERRORED = "errored"
    ENDED = "ended"


class MediaElement(Protocol):
    """What the engine needs from an audio output.

    ``attach`` and ``play`` raise ClientPlaybackError on failure. Elements
    report asynchronous events by calling ``PlaybackEngine.dispatch``.
    """

    def can_play_hls(self) -> bool: ...

    async def attach(self, url: str, use_hls: bool) -> None: ...

    async def play(self) -> None: ...

    def pause(self) -> None: ...

    async def detach(self) -> None: ...

    def set_volume(self, volume: int) -> None: ...


StatusListener = Callable[[PlayerStatus, Optional[Station]], None]


def reconnect_delay(
    attempt: int,
    base: float = RECONNECT_BASE_SECONDS,
    cap: float = RECONNECT_CAP_SECONDS,
) -> float:
    """Seconds to wait before reconnect number ``attempt`` (1-based)."""
    return min(cap, base * attempt)


class PlaybackEngine:
    """Drives one MediaElement for the currently selected station."""

    def __init__(
        self,
        element: MediaElement,
        relay_base: Optional[str] = None,
        allow_insecure: bool = False,
        stall_grace: float = STALL_GRACE_SECONDS,
        on_status: Optional[StatusListener] = None,
        reconnect_base: float = RECONNECT_BASE_SECONDS,
        reconnect_cap: float = RECONNECT_CAP_SECONDS,
    ):
        self.element = element
        self.relay_base = relay_base
        self.allow_insecure = allow_insecure
        self.stall_grace = stall_grace
        self.on_status = on_status
        self.reconnect_base = reconnect_base
        self.reconnect_cap = reconnect_cap

        self.status = PlayerStatus.IDLE
        self.station: Optional[Station] = None
        self.candidates: tuple[str, ...] = ()
        self.candidate_index = 0
        self.reconnect = ReconnectState()
        self.last_reconnect_delay: Optional[float] = None

        self._stall_handle: Optional[asyncio.TimerHandle] = None
        self._attach_task: Optional[asyncio.Task] = None
        self._session = 0
        self._attempt = 0

    @property
    def session(self) -> int:
        return self._session

    @property
    def current_url(self) -> Optional[str]:
        if not self.candidates:
            return None
        return self.candidates[self.candidate_index]

    @property
    def reconnect_pending(self) -> bool:
        return self.reconnect.pending_timer_handle is not None

    @property
    def stall_pending(self) -> bool:
        return self._stall_handle is not None

    # Public operations

    async def play(self, station: Station) -> None:
        """Start playing a station from its first candidate URL."""
        self._cancel_reconnect()
        self.reconnect.attempt_count = 0
        self._cancel_stall()
        self._cancel_attach()
        self._session += 1

        self.station = station
        self.candidates = build_stream_candidates(
            station.playback_url, self.relay_base, self.allow_insecure
        )
        self.candidate_index = 0

        if not self.candidates:
            logger.warning(f"No playable URL for {station.name}: {station.playback_url!r}")
            self._set_status(PlayerStatus.ERROR)
            return

        logger.info(f"Playing {station.name} ({len(self.candidates)} candidate(s))")
        self._set_status(PlayerStatus.BUFFERING)
        self._spawn_attach()
        task = self._attach_task
        # A signal or a newer play() may replace this attempt while it runs
        await asyncio.wait({task})
        if not task.cancelled():
            task.result()

    def dispatch(self, signal: MediaSignal) -> None:
        """Apply one media signal to the state machine."""
        if self.station is None:
            logger.debug(f"Ignoring {signal.value} with no station selected")
            return

        if signal is MediaSignal.PLAYING:
            self._cancel_stall()
            self._cancel_reconnect()
            self.reconnect.attempt_count = 0
            self._set_status(PlayerStatus.PLAYING)
        elif signal is MediaSignal.PAUSED:
            self._cancel_stall()
            if self.status is not PlayerStatus.ERROR:
                self._set_status(PlayerStatus.PAUSED)
        elif signal in (MediaSignal.WAITING, MediaSignal.STALLED):
            self._set_status(PlayerStatus.BUFFERING)
            self._arm_stall()
        elif signal is MediaSignal.ERRORED:
            self._cancel_stall()
            if self._advance_candidate():
                self._spawn_attach()
        elif signal is MediaSignal.ENDED:
            self._cancel_stall()
            self._set_status(PlayerStatus.BUFFERING)
            self._schedule_reconnect()

    async def toggle(self) -> None:
        """Pause when playing, resume otherwise."""
        if self.station is None:
            return

        if self.status in (PlayerStatus.PLAYING, PlayerStatus.BUFFERING):
            self._cancel_reconnect()
            self.element.pause()
            self.dispatch(MediaSignal.PAUSED)
            return

        if self.status is PlayerStatus.ERROR:
            await self.play(self.station)
            return

        try:
            await self.element.play()
        except ClientPlaybackError as e:
            logger.warning(f"Resume failed: {e}")
            self._set_status(PlayerStatus.ERROR)

    async def stop(self) -> None:
        """Stop playback. Nothing scheduled before this call fires afterwards."""
        self._cancel_reconnect()
        self.reconnect.attempt_count = 0
        self._cancel_stall()
        self._cancel_attach()
        self._session += 1

        self.station = None
        self.candidates = ()
        self.candidate_index = 0

        try:
            await self.element.detach()
        except ClientPlaybackError as e:
            logger.warning(f"Detach failed: {e}")
        self._set_status(PlayerStatus.IDLE)

    def set_volume(self, volume: int) -> None:
        self.element.set_volume(max(0, min(100, int(volume))))

    # Transitions

    def _set_status(self, status: PlayerStatus) -> None:
        if status is self.status:
            return
        logger.debug(f"Player status: {self.status.value} -> {status.value}")
        self.status = status
        if self.on_status is not None:
            try:
                self.on_status(status, self.station)
            except Exception:
                logger.exception("Player status listener failed")

    def _advance_candidate(self) -> bool:
        """Move to the next candidate, or enter error and schedule a reconnect.

        Returns:
            True when another candidate is available
        """
        if self.candidate_index + 1 < len(self.candidates):
            self.candidate_index += 1
            logger.info(f"Falling back to candidate {self.candidate_index + 1}: {self.current_url}")
            self._set_status(PlayerStatus.BUFFERING)
            return True

        self._set_status(PlayerStatus.ERROR)
        self._schedule_reconnect()
        return False

    def _is_current_attempt(self, session: int, attempt: int) -> bool:
        return session == self._session and attempt == self._attempt

    async def _attach_current(
        self, session: int, attempt: int, previous: Optional[asyncio.Task] = None
    ) -> None:
        if previous is not None and not previous.done():
            await asyncio.wait({previous})
        while self._is_current_attempt(session, attempt):
            url = self.candidates[self.candidate_index]
            use_hls = is_hls_url(url) and not self.element.can_play_hls()
            try:
                await self.element.attach(url, use_hls)
                if not self._is_current_attempt(session, attempt):
                    return
                await self.element.play()
                return
            except ClientPlaybackError as e:
                if not self._is_current_attempt(session, attempt):
                    return
                logger.warning(f"Candidate failed: {url}: {e}")
                if not self._advance_candidate():
                    return

    def _spawn_attach(self) -> None:
        """Start a new attach attempt once the superseded one has finished."""
        previous = self._attach_task
        self._cancel_attach()
        self._attempt += 1
        loop = asyncio.get_running_loop()
        self._attach_task = loop.create_task(
            self._attach_current(self._session, self._attempt, previous)
        )

    def _cancel_attach(self) -> None:
        task = self._attach_task
        self._attach_task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    # Timers

    def _schedule_reconnect(self) -> None:
        if self.station is None or self.reconnect.pending_timer_handle is not None:
            return
        self.reconnect.attempt_count += 1
        delay = reconnect_delay(
            self.reconnect.attempt_count, self.reconnect_base, self.reconnect_cap
        )
        self.last_reconnect_delay = delay
        logger.info(f"Reconnect {self.reconnect.attempt_count} in {delay:.1f}s")
        loop = asyncio.get_running_loop()
        self.reconnect.pending_timer_handle = loop.call_later(
            delay, self._fire_reconnect, self._session
        )

    def _fire_reconnect(self, session: int) -> None:
        self.reconnect.pending_timer_handle = None
        if session != self._session or self.station is None:
            return
        logger.info(f"Reconnecting to {self.station.name}")
        self.candidate_index = 0
        self._set_status(PlayerStatus.BUFFERING)
        self._spawn_attach()

    def _cancel_reconnect(self) -> None:
        handle = self.reconnect.pending_timer_handle
        self.reconnect.pending_timer_handle = None
        if handle is not None:
            handle.cancel()

    def _arm_stall(self) -> None:
        if self._stall_handle is not None:
            return
        loop = asyncio.get_running_loop()
        self._stall_handle = loop.call_later(
            self.stall_grace, self._stall_expired, self._session
        )

    def _stall_expired(self, session: int) -> None:
        self._stall_handle = None
        if session != self._session or self.status is not PlayerStatus.BUFFERING:
            return
        logger.warning(f"Stalled for more than {self.stall_grace:.0f}s, reconnecting")
        self._schedule_reconnect()

    def _cancel_stall(self) -> None:
        handle = self._stall_handle
        self._stall_handle = None
        if handle is not None:
            handle.cancel()
