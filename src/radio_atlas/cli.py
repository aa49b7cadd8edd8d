"""
Radio Atlas CLI - Entry point

Runs the relay server, resolves now-playing titles from the terminal, and
plays streams locally through mpv.
"""

import argparse
import asyncio
import os
import socket
import sys
from typing import Optional

from rich.console import Console

from radio_atlas.core.config import Config, load_config
from radio_atlas.core.errors import ClientPlaybackError
from radio_atlas.core.output import setup_loguru

console = Console()


def is_port_available(port: int, host: str = "0.0.0.0") -> bool:
    """Check if a port is available for binding."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        try:
            s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            s.settimeout(1.0)
            s.bind((host, port))
            return True
        except OSError:
            return False


def run_serve(
    config: Config,
    host: Optional[str],
    port: Optional[int],
    reload: bool,
    debug: bool = False,
) -> int:
    """Run the relay server with uvicorn.

    The app configures logging from its own config load, so --debug is passed
    through the environment (reload workers inherit it).
    """
    import uvicorn

    if debug:
        os.environ["RADIO_ATLAS_LOG_LEVEL"] = "DEBUG"

    host = host or config.server.host
    port = port or config.server.port
    if not is_port_available(port, host):
        console.print(f"[red]Port {port} is already in use[/red]")
        return 1

    console.print(f"[bold]Radio Atlas relay[/bold] on http://{host}:{port}")
    uvicorn.run(
        "web.backend.main:app",
        host=host,
        port=port,
        reload=reload,
        log_level="debug" if debug else "info",
    )
    return 0


async def _now_playing(config: Config, url: str) -> int:
    from radio_atlas.core.http import create_client
    from radio_atlas.domain.radio.resolver import NowPlayingResolver

    async with create_client(config) as client:
        resolver = NowPlayingResolver(client, icy_timeout=config.metadata.icy_timeout)
        result = await resolver.resolve(url)

    for line in result.logs:
        console.print(f"  [dim]{line}[/dim]")
    if not result.title:
        console.print("[yellow]No metadata found[/yellow]")
        return 1
    console.print(f"[green]♪[/green] {result.title} [dim]({result.source})[/dim]")
    return 0


def build_engine(config: Config, element, on_status=None):
    """Playback engine for the local mpv player.

    Plain http stations stay playable: the candidates keep the original URL
    after the https upgrade unless ``playback.allow_insecure`` is turned off.
    """
    from radio_atlas.domain.playback.engine import PlaybackEngine

    return PlaybackEngine(
        element,
        relay_base=config.playback.relay_base,
        allow_insecure=config.playback.allow_insecure,
        stall_grace=config.playback.stall_grace,
        on_status=on_status,
    )


async def _play(config: Config, url: str, name: Optional[str]) -> int:
    from radio_atlas.core.http import create_client, create_push_client
    from radio_atlas.domain.playback.engine import PlayerStatus
    from radio_atlas.domain.playback.mpv import MpvMediaElement
    from radio_atlas.domain.playback.tracker import NowPlayingTracker
    from radio_atlas.domain.radio.models import NowPlayingState, NowPlayingStatus, Station
    from radio_atlas.domain.radio.push_channel import NightridePushChannel
    from radio_atlas.domain.radio.resolver import NowPlayingResolver

    client = create_client(config)
    push_client = create_push_client(config)
    push_channel = NightridePushChannel(push_client) if config.metadata.push_channel else None

    def show_track(state: NowPlayingState) -> None:
        if state.status is NowPlayingStatus.READY:
            console.print(f"[green]♪[/green] {state.track}")
        elif state.status is NowPlayingStatus.UNAVAILABLE:
            console.print("[dim]Now playing unavailable[/dim]")

    tracker = NowPlayingTracker(
        NowPlayingResolver(client, icy_timeout=config.metadata.icy_timeout),
        push_channel=push_channel,
        poll_interval=config.metadata.poll_interval,
        grace_window=config.metadata.grace_window,
        first_result_timeout=config.metadata.first_result_timeout,
        on_change=show_track,
    )

    def on_status(status: PlayerStatus, station: Optional[Station]) -> None:
        console.print(f"[dim]{status.value}[/dim]")
        tracker.on_player_status(status, station)

    element = MpvMediaElement.from_config(config.playback)
    engine = build_engine(config, element, on_status)

    station = Station(id=url, stream_url=url, resolved_stream_url=url, name=name or url)
    try:
        await element.start(engine.dispatch)
        console.print(f"[bold]{station.name}[/bold]  (Ctrl-C to stop)")
        await engine.play(station)
        await asyncio.Event().wait()
    except ClientPlaybackError as e:
        console.print(f"[red]{e}[/red]")
        return 1
    finally:
        tracker.stop()
        await engine.stop()
        await element.aclose()
        if push_channel is not None:
            await push_channel.aclose()
        await push_client.aclose()
        await client.aclose()
    return 0


def main() -> None:
    """Main entry point for the radio-atlas command."""
    parser = argparse.ArgumentParser(
        description="Radio Atlas - internet radio relay and player",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="subcommand", help="Available commands")

    serve_parser = subparsers.add_parser("serve", help="Run the relay HTTP server")
    serve_parser.add_argument("--host", help="Bind address (default from config)")
    serve_parser.add_argument("--port", type=int, help="Port (default from config)")
    serve_parser.add_argument("--reload", action="store_true", help="Reload on code changes")

    np_parser = subparsers.add_parser("now-playing", help="Resolve the current track of a stream")
    np_parser.add_argument("url", help="Stream URL")

    play_parser = subparsers.add_parser("play", help="Play a stream through mpv")
    play_parser.add_argument("url", help="Stream URL")
    play_parser.add_argument("--name", help="Station name to display")

    args = parser.parse_args()
    if not args.subcommand:
        parser.print_help()
        sys.exit(1)

    config = load_config()
    level = "DEBUG" if args.debug else config.logging.level
    # The server configures its own sinks on startup
    if args.subcommand != "serve":
        setup_loguru(None, level=level, console_output=args.debug)

    if args.subcommand == "serve":
        sys.exit(run_serve(config, args.host, args.port, args.reload, args.debug))

    elif args.subcommand == "now-playing":
        sys.exit(asyncio.run(_now_playing(config, args.url)))

    elif args.subcommand == "play":
        try:
            sys.exit(asyncio.run(_play(config, args.url, args.name)))
        except KeyboardInterrupt:
            console.print("Stopped")
            sys.exit(0)


if __name__ == "__main__":
    main()
