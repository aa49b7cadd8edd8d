"""
Configuration management for Radio Atlas
"""

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from loguru import logger


@dataclass
class ServerConfig:
    """Configuration for the HTTP relay server."""

    host: str = "0.0.0.0"
    port: int = 3001
    public_url: Optional[str] = None  # Relay base used when rewriting playlists
    allowed_origins: List[str] = field(default_factory=lambda: ["*"])


@dataclass
class RelayConfig:
    """Configuration for upstream stream fetching."""

    buffer_bytes: int = 512 * 1024  # Jitter buffer between upstream and client
    connect_timeout: float = 10.0
    read_timeout: float = 30.0
    user_agent: str = "RadioAtlas/1.0"


@dataclass
class MetadataConfig:
    """Configuration for now-playing resolution."""

    poll_interval: float = 60.0
    grace_window: float = 20.0  # Silence before a track is reported unavailable
    first_result_timeout: float = 8.0
    icy_timeout: float = 10.0
    push_channel: bool = True


@dataclass
class PlaybackConfig:
    """Configuration for the local playback engine."""

    relay_base: Optional[str] = None
    allow_insecure: bool = True  # mpv has no mixed-content rule; false requires https or the relay
    stall_grace: float = 5.0
    volume: int = 80
    mpv_socket_path: Optional[str] = None

    def validate(self) -> None:
        """Validate playback configuration values.

        Raises:
            ValueError: If configuration values are invalid
        """
        if not 0 <= self.volume <= 100:
            raise ValueError(f"Invalid volume: {self.volume}. Must be 0-100")
        if self.stall_grace < 0:
            raise ValueError(f"Invalid stall_grace: {self.stall_grace}")


@dataclass
class CatalogConfig:
    """Configuration for the station directory cache."""

    ttl_seconds: int = 30 * 60


@dataclass
class ExtractorConfig:
    """Configuration for media-link extraction."""

    url: Optional[str] = None  # External extractor service; yt-dlp when unset


@dataclass
class LoggingConfig:
    """Configuration for logging."""

    level: str = "INFO"  # DEBUG, INFO, WARNING, ERROR, CRITICAL
    log_file: Optional[str] = None
    console_output: bool = True


@dataclass
class Config:
    """Main configuration object."""

    server: ServerConfig = field(default_factory=ServerConfig)
    relay: RelayConfig = field(default_factory=RelayConfig)
    metadata: MetadataConfig = field(default_factory=MetadataConfig)
    playback: PlaybackConfig = field(default_factory=PlaybackConfig)
    catalog: CatalogConfig = field(default_factory=CatalogConfig)
    extractor: ExtractorConfig = field(default_factory=ExtractorConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def get_config_dir() -> Path:
    """Get the configuration directory path."""
    config_home = os.environ.get("XDG_CONFIG_HOME")
    if config_home:
        return Path(config_home) / "radio-atlas"
    return Path.home() / ".config" / "radio-atlas"


def get_data_dir() -> Path:
    """Get the data directory path."""
    data_home = os.environ.get("XDG_DATA_HOME")
    if data_home:
        return Path(data_home) / "radio-atlas"
    return Path.home() / ".local" / "share" / "radio-atlas"


def _find_project_config() -> Optional[Path]:
    """Find config.toml in project root by looking for pyproject.toml.

    Returns:
        Path to config.toml in project root, or None if not found
    """
    current = Path(__file__).resolve().parent
    for parent in [current] + list(current.parents):
        if (parent / "pyproject.toml").exists():
            config_path = parent / "config.toml"
            return config_path if config_path.exists() else None
    return None


def get_config_path() -> Path:
    """Get the main configuration file path.

    Checks for config.toml in the following order:
    1. Project root (detected via pyproject.toml) - for development
    2. Current working directory
    3. XDG_CONFIG_HOME/radio-atlas (or ~/.config/radio-atlas)
    """
    project_config = _find_project_config()
    if project_config:
        return project_config

    local_config = Path.cwd() / "config.toml"
    if local_config.exists():
        return local_config

    return get_config_dir() / "config.toml"


def _normalize_base(value: Optional[str]) -> Optional[str]:
    """Strip trailing slashes from a base URL, treating blanks as unset."""
    if not value or not value.strip():
        return None
    return value.strip().rstrip("/")


def _apply_env_overrides(config: Config) -> Config:
    """Environment variables take precedence over TOML values."""
    public_url = os.environ.get("PUBLIC_URL")
    if public_url:
        config.server.public_url = _normalize_base(public_url)

    extractor_url = os.environ.get("EXTRACTOR_URL")
    if extractor_url:
        config.extractor.url = _normalize_base(extractor_url)

    host = os.environ.get("HOST")
    if host:
        config.server.host = host

    port = os.environ.get("PORT")
    if port:
        try:
            config.server.port = int(port)
        except ValueError:
            logger.warning(f"Ignoring invalid PORT value: {port!r}")

    origins = os.environ.get("ALLOWED_ORIGINS")
    if origins:
        config.server.allowed_origins = [o.strip() for o in origins.split(",") if o.strip()]

    level = os.environ.get("RADIO_ATLAS_LOG_LEVEL")
    if level:
        config.logging.level = level.upper()

    return config


def _parse_config(toml_data: dict) -> Config:
    """Build a Config from parsed TOML, falling back to defaults per field."""
    config = Config()

    if "server" in toml_data:
        server_data = toml_data["server"]
        config.server = ServerConfig(
            host=server_data.get("host", config.server.host),
            port=server_data.get("port", config.server.port),
            public_url=_normalize_base(server_data.get("public_url")),
            allowed_origins=server_data.get(
                "allowed_origins", config.server.allowed_origins
            ),
        )

    if "relay" in toml_data:
        relay_data = toml_data["relay"]
        config.relay = RelayConfig(
            buffer_bytes=relay_data.get("buffer_bytes", config.relay.buffer_bytes),
            connect_timeout=relay_data.get(
                "connect_timeout", config.relay.connect_timeout
            ),
            read_timeout=relay_data.get("read_timeout", config.relay.read_timeout),
            user_agent=relay_data.get("user_agent", config.relay.user_agent),
        )

    if "metadata" in toml_data:
        metadata_data = toml_data["metadata"]
        config.metadata = MetadataConfig(
            poll_interval=metadata_data.get(
                "poll_interval", config.metadata.poll_interval
            ),
            grace_window=metadata_data.get(
                "grace_window", config.metadata.grace_window
            ),
            first_result_timeout=metadata_data.get(
                "first_result_timeout", config.metadata.first_result_timeout
            ),
            icy_timeout=metadata_data.get("icy_timeout", config.metadata.icy_timeout),
            push_channel=metadata_data.get(
                "push_channel", config.metadata.push_channel
            ),
        )

    if "playback" in toml_data:
        playback_data = toml_data["playback"]
        config.playback = PlaybackConfig(
            relay_base=_normalize_base(playback_data.get("relay_base")),
            allow_insecure=playback_data.get(
                "allow_insecure", config.playback.allow_insecure
            ),
            stall_grace=playback_data.get("stall_grace", config.playback.stall_grace),
            volume=playback_data.get("volume", config.playback.volume),
            mpv_socket_path=playback_data.get("mpv_socket_path"),
        )
        try:
            config.playback.validate()
        except ValueError as e:
            logger.warning(f"Invalid playback configuration: {e}. Using defaults.")
            config.playback = PlaybackConfig()

    if "catalog" in toml_data:
        catalog_data = toml_data["catalog"]
        config.catalog = CatalogConfig(
            ttl_seconds=catalog_data.get("ttl_seconds", config.catalog.ttl_seconds),
        )

    if "extractor" in toml_data:
        config.extractor = ExtractorConfig(
            url=_normalize_base(toml_data["extractor"].get("url")),
        )

    if "logging" in toml_data:
        logging_data = toml_data["logging"]
        log_file = logging_data.get("log_file")
        if log_file:
            log_file = str(Path(log_file).expanduser())
        config.logging = LoggingConfig(
            level=logging_data.get("level", config.logging.level).upper(),
            log_file=log_file,
            console_output=logging_data.get(
                "console_output", config.logging.console_output
            ),
        )

    return config


def load_config(config_path: Optional[Path] = None) -> Config:
    """Load configuration from file, falling back to defaults.

    Environment variables override TOML values:
    - PUBLIC_URL, EXTRACTOR_URL, HOST, PORT, ALLOWED_ORIGINS
    - RADIO_ATLAS_LOG_LEVEL
    """
    from dotenv import load_dotenv

    env_path = get_config_dir() / ".env"
    if env_path.exists():
        load_dotenv(env_path)

    path = config_path or get_config_path()
    if not path.exists():
        return _apply_env_overrides(Config())

    try:
        with open(path, "rb") as f:
            toml_data = tomllib.load(f)
        config = _parse_config(toml_data)
    except (OSError, tomllib.TOMLDecodeError) as e:
        logger.warning(f"Error loading configuration from {path}: {e}. Using defaults.")
        config = Config()

    return _apply_env_overrides(config)
