"""Core infrastructure layer - no business logic dependencies.

This module provides foundation-level services:
- Configuration management (TOML)
- Logging (Loguru)
- Error hierarchy
- Shared HTTP client

Clean architecture principle: The core layer has no dependencies on
domain or application layers.
"""

from .config import (
    Config,
    get_config_dir,
    get_config_path,
    get_data_dir,
    load_config,
)
from .errors import (
    BlockedHostError,
    ClientPlaybackError,
    InvalidURLError,
    RadioAtlasError,
    UpstreamError,
    ValidationError,
)
from .http import create_client, create_push_client
from .output import setup_from_config, setup_loguru

__all__ = [
    # Configuration
    "Config",
    "load_config",
    "get_config_dir",
    "get_config_path",
    "get_data_dir",
    # Errors
    "RadioAtlasError",
    "ValidationError",
    "InvalidURLError",
    "BlockedHostError",
    "UpstreamError",
    "ClientPlaybackError",
    # HTTP
    "create_client",
    "create_push_client",
    # Logging
    "setup_loguru",
    "setup_from_config",
]
