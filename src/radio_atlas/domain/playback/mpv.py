"""
MPV media element with JSON IPC.

Commands go over short-lived socket connections; a watcher task keeps one
connection open, observes playback properties, and turns mpv events into
MediaSignals for the playback engine.
"""

import asyncio
import json
import os
import socket
import subprocess
import tempfile
import time
from pathlib import Path
from typing import Any, Callable, Optional

from loguru import logger

from radio_atlas.core.config import PlaybackConfig
from radio_atlas.core.errors import ClientPlaybackError

from .engine import MediaSignal

OBSERVED_PROPERTIES = ("idle-active", "eof-reached", "pause", "paused-for-cache", "core-idle")

SignalListener = Callable[[MediaSignal], None]


def check_mpv_available() -> bool:
    """Check if MPV is available on the system."""
    try:
        result = subprocess.run(
            ["mpv", "--version"], capture_output=True, text=True, timeout=5
        )
        return result.returncode == 0
    except (subprocess.SubprocessError, FileNotFoundError, OSError):
        return False


def default_socket_path() -> str:
    return str(Path(tempfile.gettempdir()) / f"radio-atlas-mpv-{os.getpid()}")


def start_mpv(socket_path: str, volume: int) -> Optional[subprocess.Popen]:
    """Start MPV in idle mode with JSON IPC on ``socket_path``."""
    logger.info(f"Starting MPV with socket: {socket_path}")

    try:
        if os.path.exists(socket_path):
            logger.debug(f"Removing existing socket: {socket_path}")
            os.unlink(socket_path)

        cmd = [
            "mpv",
            "--idle=yes",
            "--no-video",
            "--no-terminal",
            f"--input-ipc-server={socket_path}",
            f"--volume={volume}",
            "--keep-open=yes",
            "--load-scripts=no",
            "--cache=yes",
        ]

        process = subprocess.Popen(
            cmd,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            stdin=subprocess.DEVNULL,
        )

        timeout = 5.0
        start_time = time.time()
        while not os.path.exists(socket_path):
            if time.time() - start_time > timeout:
                logger.error(f"MPV socket creation timeout after {timeout}s")
                process.kill()
                return None
            time.sleep(0.1)

        if send_mpv_command(socket_path, {"command": ["get_property", "idle-active"]}):
            logger.info("MPV started successfully")
            return process

        logger.error("MPV socket connection test failed")
        process.kill()
        return None

    except (subprocess.SubprocessError, OSError) as e:
        logger.error(f"Failed to start MPV: {e}")
        return None


def stop_mpv(process: Optional[subprocess.Popen], socket_path: Optional[str]) -> None:
    """Stop MPV process and remove its socket."""
    if process:
        try:
            process.kill()
            process.wait(timeout=2.0)
        except (OSError, subprocess.TimeoutExpired):
            pass  # Already gone

    if socket_path and os.path.exists(socket_path):
        try:
            os.unlink(socket_path)
        except OSError:
            pass


def send_mpv_command(socket_path: Optional[str], command: dict[str, Any]) -> bool:
    """Send one JSON IPC command to MPV; True when mpv answers success."""
    if not socket_path or not os.path.exists(socket_path):
        return False

    try:
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        sock.settimeout(2.0)
        sock.connect(socket_path)
        sock.send((json.dumps(command) + "\n").encode("utf-8"))
        response = sock.recv(4096).decode("utf-8").strip()
        sock.close()
    except OSError:
        return False

    if not response:
        return True
    # Async events may precede the reply on the same connection
    for line in response.splitlines():
        try:
            data = json.loads(line)
        except json.JSONDecodeError:
            continue
        if "error" in data:
            return data.get("error") == "success"
    return False


def derive_signal(props: dict[str, Any]) -> Optional[MediaSignal]:
    """Map observed mpv properties to the signal they represent."""
    if props.get("idle-active"):
        return None
    if props.get("eof-reached"):
        return MediaSignal.ENDED
    if props.get("pause"):
        return MediaSignal.PAUSED
    if props.get("paused-for-cache"):
        return MediaSignal.WAITING
    core_idle = props.get("core-idle")
    if core_idle is False:
        return MediaSignal.PLAYING
    if core_idle:
        return MediaSignal.WAITING
    return None


class MpvMediaElement:
    """MediaElement backed by an mpv subprocess. mpv plays HLS natively."""

    def __init__(self, socket_path: Optional[str] = None, volume: int = 80):
        self.socket_path = socket_path or default_socket_path()
        self.volume = volume
        self.process: Optional[subprocess.Popen] = None
        self._listener: Optional[SignalListener] = None
        self._watcher: Optional[asyncio.Task] = None
        self._props: dict[str, Any] = {}
        self._attached = False
        self._last_signal: Optional[MediaSignal] = None
        self._pending: set[asyncio.Task] = set()

    @classmethod
    def from_config(cls, config: PlaybackConfig) -> "MpvMediaElement":
        return cls(socket_path=config.mpv_socket_path, volume=config.volume)

    async def start(self, listener: SignalListener) -> None:
        """Launch mpv and begin forwarding signals to ``listener``.

        Raises:
            ClientPlaybackError: When mpv is missing or fails to start
        """
        if not await asyncio.to_thread(check_mpv_available):
            raise ClientPlaybackError("mpv is not installed")
        self.process = await asyncio.to_thread(start_mpv, self.socket_path, self.volume)
        if self.process is None:
            raise ClientPlaybackError("Failed to start mpv")
        self._listener = listener
        self._watcher = asyncio.create_task(self._watch(), name="mpv-watcher")

    async def aclose(self) -> None:
        if self._watcher is not None:
            self._watcher.cancel()
            try:
                await self._watcher
            except asyncio.CancelledError:
                pass
            self._watcher = None
        await self.flush()
        await asyncio.to_thread(stop_mpv, self.process, self.socket_path)
        self.process = None

    def can_play_hls(self) -> bool:
        return True

    async def _command(self, *args: Any) -> None:
        # Queued pause/volume commands reach mpv first
        await self.flush()
        ok = await asyncio.to_thread(
            send_mpv_command, self.socket_path, {"command": list(args)}
        )
        if not ok:
            raise ClientPlaybackError(f"mpv rejected {args[0]}")

    async def attach(self, url: str, use_hls: bool) -> None:
        self._attached = False
        self._last_signal = None
        await self._command("loadfile", url, "replace")
        self._attached = True

    async def play(self) -> None:
        await self._command("set_property", "pause", False)

    def _send_soon(self, *args: Any) -> None:
        """Queue a command from sync code; the socket round trip runs off the loop."""
        task = asyncio.get_running_loop().create_task(self._send_logged(*args))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _send_logged(self, *args: Any) -> None:
        ok = await asyncio.to_thread(
            send_mpv_command, self.socket_path, {"command": list(args)}
        )
        if not ok:
            logger.warning(f"mpv did not accept {args[0]} {args[1]}")

    async def flush(self) -> None:
        """Wait for queued pause and volume commands."""
        if self._pending:
            await asyncio.wait(set(self._pending))

    def pause(self) -> None:
        self._send_soon("set_property", "pause", True)

    async def detach(self) -> None:
        self._attached = False
        self._last_signal = None
        await self._command("stop")

    def set_volume(self, volume: int) -> None:
        self.volume = volume
        self._send_soon("set_property", "volume", volume)

    def handle_event(self, event: dict[str, Any]) -> Optional[MediaSignal]:
        """Fold one IPC event into the observed state.

        Returns:
            The signal to emit, or None when nothing changed
        """
        name = event.get("event")
        if name == "property-change":
            self._props[event.get("name")] = event.get("data")
            signal = derive_signal(self._props)
        elif name == "end-file":
            reason = event.get("reason")
            if reason == "error":
                signal = MediaSignal.ERRORED
            elif reason == "eof":
                signal = MediaSignal.ENDED
            else:
                signal = None
        else:
            return None

        if not self._attached or signal is None or signal is self._last_signal:
            return None
        self._last_signal = signal
        return signal

    async def _watch(self) -> None:
        try:
            reader, writer = await asyncio.open_unix_connection(self.socket_path)
        except OSError as e:
            logger.warning(f"mpv watcher could not connect: {e}")
            return

        try:
            for observe_id, prop in enumerate(OBSERVED_PROPERTIES, start=1):
                command = {"command": ["observe_property", observe_id, prop]}
                writer.write((json.dumps(command) + "\n").encode("utf-8"))
            await writer.drain()

            while True:
                line = await reader.readline()
                if not line:
                    logger.info("mpv IPC connection closed")
                    break
                try:
                    event = json.loads(line)
                except json.JSONDecodeError:
                    continue
                signal = self.handle_event(event)
                if signal is not None and self._listener is not None:
                    logger.debug(f"mpv signal: {signal.value}")
                    self._listener(signal)
        finally:
            writer.close()
