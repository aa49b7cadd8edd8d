"""
Now-playing tracking for the active station.

Owns the single NowPlayingState. Stations served by the push channel get their
titles from it; every other station is polled through the resolver chain.
A missing title only turns into "unavailable" after a grace window, so one
failed poll does not blank a title that was shown a moment ago.
"""

import asyncio
import time
from typing import Callable, Optional

from loguru import logger

from radio_atlas.domain.radio import push_channel as push
from radio_atlas.domain.radio.models import NowPlayingState, NowPlayingStatus, Station
from radio_atlas.domain.radio.push_channel import NightridePushChannel
from radio_atlas.domain.radio.resolver import NowPlayingResolver

from .engine import PlayerStatus

POLL_INTERVAL_SECONDS = 60.0
GRACE_WINDOW_SECONDS = 20.0
FIRST_RESULT_TIMEOUT_SECONDS = 8.0

StateListener = Callable[[NowPlayingState], None]


class NowPlayingTracker:
    def __init__(
        self,
        resolver: NowPlayingResolver,
        push_channel: Optional[NightridePushChannel] = None,
        poll_interval: float = POLL_INTERVAL_SECONDS,
        grace_window: float = GRACE_WINDOW_SECONDS,
        first_result_timeout: float = FIRST_RESULT_TIMEOUT_SECONDS,
        on_change: Optional[StateListener] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.resolver = resolver
        self.push_channel = push_channel
        self.poll_interval = poll_interval
        self.grace_window = grace_window
        self.first_result_timeout = first_result_timeout
        self.on_change = on_change
        self.clock = clock

        self.state = NowPlayingState()
        self._station: Optional[Station] = None
        self._token = 0
        self._started_at: Optional[float] = None
        self._poll_task: Optional[asyncio.Task] = None
        self._timeout_handle: Optional[asyncio.TimerHandle] = None
        self._unsubscribe: Optional[Callable[[], None]] = None

    @property
    def station(self) -> Optional[Station]:
        return self._station

    def uses_push(self, station: Station) -> bool:
        url = station.playback_url
        return (
            self.push_channel is not None
            and push.handles(url)
            and push.station_id_for(url) is not None
        )

    def start(self, station: Station) -> None:
        """Begin tracking ``station``, discarding any previous state."""
        self.stop()
        self._token += 1
        token = self._token
        self._station = station
        self._started_at = self.clock()
        self._set_state(
            NowPlayingState(station_id=station.id, status=NowPlayingStatus.LOADING)
        )

        if self.uses_push(station):
            push_id = push.station_id_for(station.playback_url)
            logger.debug(f"Tracking {station.name} via push channel ({push_id})")
            self._unsubscribe = self.push_channel.subscribe(
                push_id, lambda _sid, track: self.apply_track(track, token)
            )

        loop = asyncio.get_running_loop()
        self._poll_task = loop.create_task(self._poll_loop(station, token))
        self._timeout_handle = loop.call_later(
            self.first_result_timeout, self._first_result_expired, token
        )

    def stop(self) -> None:
        """Stop polling immediately and reset to idle."""
        self._token += 1
        if self._poll_task is not None:
            if self._poll_task is not asyncio.current_task():
                self._poll_task.cancel()
            self._poll_task = None
        if self._timeout_handle is not None:
            self._timeout_handle.cancel()
            self._timeout_handle = None
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self._station = None
        self._started_at = None
        if self.state.status is not NowPlayingStatus.IDLE or self.state.station_id:
            self._set_state(NowPlayingState())

    def on_player_status(self, status: PlayerStatus, station: Optional[Station]) -> None:
        """Follow the playback engine: track while live, stop when it stops."""
        if status is PlayerStatus.PLAYING and station is not None:
            if self._station is None or self._station.id != station.id:
                self.start(station)
        elif status in (PlayerStatus.IDLE, PlayerStatus.PAUSED) or station is None:
            self.stop()

    def apply_track(self, track: Optional[str], token: Optional[int] = None) -> None:
        """Fold one provider answer into the state.

        Answers carrying a stale token (from a previous station) are dropped.
        """
        if token is not None and token != self._token:
            return
        if self._station is None:
            return

        now = self.clock()
        if track:
            if self._timeout_handle is not None:
                self._timeout_handle.cancel()
                self._timeout_handle = None
            self._set_state(
                NowPlayingState(
                    station_id=self._station.id,
                    track=track,
                    status=NowPlayingStatus.READY,
                    last_updated_at=now,
                )
            )
            return

        last = self.state.last_updated_at
        if last is None:
            # Nothing shown yet; the first-result timeout decides
            return
        if now - last > self.grace_window:
            self._set_state(
                NowPlayingState(
                    station_id=self._station.id,
                    status=NowPlayingStatus.UNAVAILABLE,
                    last_updated_at=last,
                )
            )

    async def _poll_loop(self, station: Station, token: int) -> None:
        url = station.playback_url
        served_by_push = self.uses_push(station)
        while token == self._token:
            if served_by_push and self.push_channel.healthy:
                logger.debug(f"Push channel healthy, skipping probes for {station.name}")
            else:
                result = await self.resolver.resolve(url)
                self.apply_track(result.title, token)
            await asyncio.sleep(self.poll_interval)

    def _first_result_expired(self, token: int) -> None:
        self._timeout_handle = None
        if token != self._token or self._station is None:
            return
        if self.state.last_updated_at is None:
            logger.debug(f"No now-playing data for {self._station.name}")
            self._set_state(
                NowPlayingState(
                    station_id=self._station.id, status=NowPlayingStatus.UNAVAILABLE
                )
            )

    def _set_state(self, state: NowPlayingState) -> None:
        changed = (state.track, state.status) != (self.state.track, self.state.status)
        self.state = state
        if changed and self.on_change is not None:
            try:
                self.on_change(state)
            except Exception:
                logger.exception("Now-playing listener failed")
