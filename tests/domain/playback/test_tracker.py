"""Tests for now-playing tracking."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from radio_atlas.domain.playback.engine import PlayerStatus
from radio_atlas.domain.playback.tracker import NowPlayingTracker
from radio_atlas.domain.radio.models import NowPlayingStatus, ResolveResult, Station

NIGHTRIDE_URL = "https://stream.nightride.fm/chillsynth.mp3"


class ManualClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def make_station(url: str = "http://s.example/live", station_id: str = "s1") -> Station:
    return Station(id=station_id, stream_url=url, resolved_stream_url=url, name=station_id)


def make_resolver(title=None) -> MagicMock:
    resolver = MagicMock()
    resolver.resolve = AsyncMock(return_value=ResolveResult(title=title, source="icy" if title else None))
    return resolver


async def settle() -> None:
    for _ in range(5):
        await asyncio.sleep(0)


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


class TestPolling:
    """Tests for resolver polling."""

    @pytest.mark.anyio
    async def test_first_poll_sets_track(self, clock: ManualClock) -> None:
        resolver = make_resolver("A - B")
        tracker = NowPlayingTracker(resolver, clock=clock)

        tracker.start(make_station())
        assert tracker.state.status is NowPlayingStatus.LOADING
        await settle()

        assert tracker.state.status is NowPlayingStatus.READY
        assert tracker.state.track == "A - B"
        assert tracker.state.station_id == "s1"
        resolver.resolve.assert_awaited_once_with("http://s.example/live")
        tracker.stop()

    @pytest.mark.anyio
    async def test_polls_on_interval(self) -> None:
        resolver = make_resolver("A - B")
        tracker = NowPlayingTracker(resolver, poll_interval=0.01)

        tracker.start(make_station())
        await asyncio.sleep(0.05)
        tracker.stop()

        assert resolver.resolve.await_count >= 3

    @pytest.mark.anyio
    async def test_miss_within_grace_keeps_track(self, clock: ManualClock) -> None:
        tracker = NowPlayingTracker(make_resolver("A - B"), grace_window=20.0, clock=clock)
        tracker.start(make_station())
        await settle()

        clock.now = 10.0
        tracker.apply_track(None)
        assert tracker.state.status is NowPlayingStatus.READY
        assert tracker.state.track == "A - B"

        clock.now = 25.0
        tracker.apply_track(None)
        assert tracker.state.status is NowPlayingStatus.UNAVAILABLE
        assert tracker.state.track is None
        tracker.stop()

    @pytest.mark.anyio
    async def test_first_result_timeout(self) -> None:
        tracker = NowPlayingTracker(make_resolver(None), first_result_timeout=0.02)

        tracker.start(make_station())
        await settle()
        assert tracker.state.status is NowPlayingStatus.LOADING

        await asyncio.sleep(0.05)
        assert tracker.state.status is NowPlayingStatus.UNAVAILABLE
        tracker.stop()

    @pytest.mark.anyio
    async def test_stop_cancels_polling(self) -> None:
        resolver = make_resolver("A - B")
        tracker = NowPlayingTracker(resolver, poll_interval=0.01)
        tracker.start(make_station())
        await settle()

        tracker.stop()
        calls = resolver.resolve.await_count
        await asyncio.sleep(0.05)

        assert resolver.resolve.await_count == calls
        assert tracker.state.status is NowPlayingStatus.IDLE
        assert tracker.state.station_id is None

    @pytest.mark.anyio
    async def test_station_change_drops_old_results(self) -> None:
        async def resolve(url: str) -> ResolveResult:
            if url == "http://old.example/live":
                await asyncio.sleep(0.02)
            return ResolveResult(title=f"title for {url}")

        resolver = MagicMock()
        resolver.resolve = resolve
        tracker = NowPlayingTracker(resolver)

        tracker.start(make_station("http://old.example/live", "old"))
        await asyncio.sleep(0)
        tracker.start(make_station("http://new.example/live", "new"))
        await asyncio.sleep(0.05)

        assert tracker.state.station_id == "new"
        assert tracker.state.track == "title for http://new.example/live"
        tracker.stop()

    @pytest.mark.anyio
    async def test_stale_token_ignored(self) -> None:
        tracker = NowPlayingTracker(make_resolver(None))
        tracker.start(make_station())
        await settle()

        tracker.apply_track("Late - Answer", token=-1)

        assert tracker.state.track is None
        tracker.stop()


class TestPushChannel:
    """Tests for stations served by the push channel."""

    @pytest.mark.anyio
    async def test_push_station_skips_probes_while_healthy(self) -> None:
        resolver = make_resolver("From - Probe")
        channel = MagicMock()
        channel.healthy = True
        unsubscribe = MagicMock()
        channel.subscribe.return_value = unsubscribe
        tracker = NowPlayingTracker(resolver, push_channel=channel)

        tracker.start(make_station(NIGHTRIDE_URL))
        await settle()

        resolver.resolve.assert_not_awaited()
        station_id, listener = channel.subscribe.call_args.args
        assert station_id == "chillsynth"

        listener("chillsynth", "Push - Track")
        assert tracker.state.track == "Push - Track"
        assert tracker.state.status is NowPlayingStatus.READY

        tracker.stop()
        unsubscribe.assert_called_once()

    @pytest.mark.anyio
    async def test_unhealthy_push_falls_back_to_probes(self) -> None:
        resolver = make_resolver("From - Probe")
        channel = MagicMock()
        channel.healthy = False
        tracker = NowPlayingTracker(resolver, push_channel=channel)

        tracker.start(make_station(NIGHTRIDE_URL))
        await settle()

        resolver.resolve.assert_awaited_once_with(NIGHTRIDE_URL)
        assert tracker.state.track == "From - Probe"
        tracker.stop()

    @pytest.mark.anyio
    async def test_other_stations_not_subscribed(self) -> None:
        channel = MagicMock()
        tracker = NowPlayingTracker(make_resolver("A - B"), push_channel=channel)

        tracker.start(make_station())
        await settle()

        channel.subscribe.assert_not_called()
        tracker.stop()


class TestFollowPlayer:
    """Tests for following playback engine status."""

    @pytest.mark.anyio
    async def test_starts_on_playing_and_stops_on_pause(self) -> None:
        resolver = make_resolver("A - B")
        tracker = NowPlayingTracker(resolver)
        station = make_station()

        tracker.on_player_status(PlayerStatus.BUFFERING, station)
        assert tracker.state.status is NowPlayingStatus.IDLE

        tracker.on_player_status(PlayerStatus.PLAYING, station)
        tracker.on_player_status(PlayerStatus.PLAYING, station)
        await settle()
        assert tracker.state.track == "A - B"
        resolver.resolve.assert_awaited_once()

        tracker.on_player_status(PlayerStatus.PAUSED, station)
        assert tracker.state.status is NowPlayingStatus.IDLE

    @pytest.mark.anyio
    async def test_stops_when_player_idles(self) -> None:
        tracker = NowPlayingTracker(make_resolver("A - B"))
        tracker.on_player_status(PlayerStatus.PLAYING, make_station())
        await settle()

        tracker.on_player_status(PlayerStatus.IDLE, None)

        assert tracker.station is None
        assert tracker.state.status is NowPlayingStatus.IDLE

    @pytest.mark.anyio
    async def test_change_listener(self) -> None:
        changes = []
        tracker = NowPlayingTracker(
            make_resolver("A - B"), on_change=lambda state: changes.append(state.status)
        )

        tracker.start(make_station())
        await settle()
        tracker.stop()

        assert changes == [
            NowPlayingStatus.LOADING,
            NowPlayingStatus.READY,
            NowPlayingStatus.IDLE,
        ]
