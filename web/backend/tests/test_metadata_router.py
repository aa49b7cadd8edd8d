"""Tests for the now-playing metadata endpoint."""

from unittest.mock import MagicMock

import httpx

from web.backend.deps import get_push_channel
from web.backend.main import app


def icecast_handler(request: httpx.Request) -> httpx.Response:
    if request.url.path == "/status-json.xsl":
        return httpx.Response(
            200, json={"icestats": {"source": {"artist": "A", "title": "B"}}}
        )
    return httpx.Response(404)


class TestMetadataEndpoint:
    def test_missing_url(self, client) -> None:
        response = client.get("/metadata")

        assert response.status_code == 400
        assert response.json() == {"error": "url is required"}

    def test_icecast_title(self, client, upstream) -> None:
        upstream.handler = icecast_handler

        response = client.get("/metadata", params={"url": "http://s.example/live"})

        assert response.status_code == 200
        data = response.json()
        assert data["title"] == "A - B"
        assert data["source"] == "icecast"
        assert data["logs"] == ["Fetching: http://s.example/live", "icecast: hit (A - B)"]
        assert upstream.urls == ["http://s.example/status-json.xsl"]

    def test_no_metadata(self, client, upstream) -> None:
        response = client.get("/metadata", params={"url": "http://s.example/live"})

        assert response.status_code == 404
        data = response.json()
        assert data["error"] == "No metadata found"
        assert "icecast: miss" in data["logs"]
        assert "icy: miss" in data["logs"]

    def test_push_channel_cache(self, client, upstream) -> None:
        channel = MagicMock()
        channel.cached_track.return_value = "Push - Track"
        app.dependency_overrides[get_push_channel] = lambda: channel

        response = client.get(
            "/metadata", params={"url": "https://stream.nightride.fm/chillsynth.mp3"}
        )

        assert response.status_code == 200
        assert response.json()["title"] == "Push - Track"
        assert response.json()["source"] == "push"
        channel.ensure_started.assert_called_once()
        channel.cached_track.assert_called_once_with("chillsynth")
        assert upstream.requests == []

    def test_push_channel_without_cache_uses_probes(self, client, upstream) -> None:
        channel = MagicMock()
        channel.cached_track.return_value = None
        app.dependency_overrides[get_push_channel] = lambda: channel
        upstream.handler = icecast_handler

        response = client.get(
            "/metadata", params={"url": "https://stream.nightride.fm/chillsynth.mp3"}
        )

        assert response.status_code == 200
        assert response.json()["source"] == "icecast"
