"""Tests for the media-link extraction endpoint."""

from unittest.mock import patch

import httpx

RESOLVE = "radio_atlas.domain.radio.extractor.resolve_stream_url"


class TestExtractValidation:
    def test_missing_url(self, client, upstream) -> None:
        response = client.get("/extract")

        assert response.status_code == 400
        assert response.json() == {"error": "url is required"}

    def test_blocked_host_never_forwarded(self, client, upstream, test_config) -> None:
        test_config.extractor.url = "https://extractor.example"

        response = client.get("/extract", params={"url": "https://m.youtube.com/watch?v=x"})

        assert response.status_code == 403
        assert response.json() == {"error": "blocked host"}
        assert upstream.requests == []


class TestExtractForwarding:
    """Tests for forwarding to an external extractor service."""

    def test_forwards_status_and_body(self, client, upstream, test_config) -> None:
        test_config.extractor.url = "https://extractor.example"
        upstream.handler = lambda request: httpx.Response(
            200, json={"url": "https://cdn.example/audio.m4a"}
        )

        response = client.get("/extract", params={"url": "https://media.example/track/1"})

        assert response.status_code == 200
        assert response.json() == {"url": "https://cdn.example/audio.m4a"}
        request = upstream.requests[0]
        assert request.url.host == "extractor.example"
        assert request.url.path == "/extract"
        assert request.url.params["url"] == "https://media.example/track/1"

    def test_forwards_error_status(self, client, upstream, test_config) -> None:
        test_config.extractor.url = "https://extractor.example"
        upstream.handler = lambda request: httpx.Response(404, json={"error": "No stream found"})

        response = client.get("/extract", params={"url": "https://media.example/track/1"})

        assert response.status_code == 404

    def test_extractor_unreachable(self, client, upstream, test_config) -> None:
        test_config.extractor.url = "https://extractor.example"

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        upstream.handler = handler
        response = client.get("/extract", params={"url": "https://media.example/track/1"})

        assert response.status_code == 502
        assert response.json() == {"error": "connection refused"}


class TestLocalExtraction:
    """Tests for in-process extraction."""

    def test_resolved(self, client, upstream) -> None:
        with patch(RESOLVE, return_value="https://cdn.example/audio.m4a") as resolve:
            response = client.get("/extract", params={"url": "https://media.example/track/1"})

        assert response.status_code == 200
        assert response.json() == {"url": "https://cdn.example/audio.m4a"}
        resolve.assert_called_once_with("https://media.example/track/1")
        assert upstream.requests == []

    def test_not_found(self, client, upstream) -> None:
        with patch(RESOLVE, return_value=None):
            response = client.get("/extract", params={"url": "https://media.example/track/1"})

        assert response.status_code == 404
        assert response.json() == {"error": "No stream found"}
