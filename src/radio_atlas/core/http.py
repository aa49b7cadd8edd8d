"""Shared httpx client construction."""

from typing import Optional

import httpx

from .config import Config, RelayConfig

USER_AGENT = "RadioAtlas/1.0"


def build_timeout(relay: RelayConfig) -> httpx.Timeout:
    """Timeouts for long-lived stream reads with a short connect budget."""
    return httpx.Timeout(
        connect=relay.connect_timeout,
        read=relay.read_timeout,
        write=relay.read_timeout,
        pool=relay.connect_timeout,
    )


def create_client(
    config: Optional[Config] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    """Create the process-wide AsyncClient.

    Args:
        config: Loaded configuration (defaults used when None)
        transport: Optional transport override, used by tests

    Returns:
        AsyncClient that follows redirects and sends the relay User-Agent
    """
    relay = config.relay if config else RelayConfig()
    return httpx.AsyncClient(
        timeout=build_timeout(relay),
        follow_redirects=True,
        headers={"User-Agent": relay.user_agent or USER_AGENT},
        limits=httpx.Limits(max_connections=200, max_keepalive_connections=20),
        transport=transport,
    )


def create_push_client(
    config: Optional[Config] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    """Client for server-sent-event channels.

    Event streams can sit idle between tracks far longer than any stream read,
    so reads never time out; connects keep the relay's budget.
    """
    relay = config.relay if config else RelayConfig()
    return httpx.AsyncClient(
        timeout=httpx.Timeout(relay.connect_timeout, read=None),
        follow_redirects=True,
        headers={"User-Agent": relay.user_agent or USER_AGENT},
        transport=transport,
    )
