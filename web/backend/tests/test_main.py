"""Tests for FastAPI application."""

from fastapi.testclient import TestClient

from web.backend.main import app

plain_client = TestClient(app)


def test_health_endpoint():
    """Test health check endpoint returns 200."""
    response = plain_client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


def test_cors_preflight():
    """Preflight allows any origin and the Range header."""
    response = plain_client.options(
        "/stream",
        headers={
            "Origin": "http://localhost:5173",
            "Access-Control-Request-Method": "GET",
            "Access-Control-Request-Headers": "Range",
        },
    )
    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "*"
    assert "range" in response.headers["access-control-allow-headers"].lower()


def test_cors_exposes_range_headers(client, upstream):
    """Simple requests expose the headers players need for seeking."""
    response = client.get("/health", headers={"Origin": "https://app.example"})

    assert response.headers["access-control-allow-origin"] == "*"
    exposed = response.headers["access-control-expose-headers"].lower()
    for header in ("content-length", "content-range", "accept-ranges", "content-type"):
        assert header in exposed


def test_push_channel_gets_its_own_client(monkeypatch):
    """The shared relay client keeps its read timeout; the event stream has none."""
    from web.backend import main

    monkeypatch.setattr(main.config.metadata, "push_channel", True)
    with TestClient(app) as lifespan_client:
        state = lifespan_client.app.state
        push_client = state.push_channel._client

        assert push_client is not state.client
        assert push_client.timeout.read is None
        assert state.client.timeout.read is not None


def test_every_server_error_has_a_handler():
    """Each error a router can raise maps to a JSON response."""
    import radio_atlas.core as core
    from radio_atlas.core.errors import ClientPlaybackError, RadioAtlasError

    server_errors = [
        getattr(core, name)
        for name in core.__all__
        if isinstance(getattr(core, name), type)
        and issubclass(getattr(core, name), RadioAtlasError)
        and getattr(core, name) not in (RadioAtlasError, ClientPlaybackError)
    ]

    assert server_errors
    for exc_type in server_errors:
        assert any(
            isinstance(handled, type) and issubclass(exc_type, handled)
            for handled in app.exception_handlers
        )
