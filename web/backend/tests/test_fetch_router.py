"""Tests for the text passthrough endpoint."""

import httpx


def test_fetch_missing_url(client, upstream):
    response = client.get("/fetch")

    assert response.status_code == 400
    assert response.json() == {"error": "url is required"}


def test_fetch_rejects_non_http(client, upstream):
    response = client.get("/fetch", params={"url": "file:///etc/passwd"})

    assert response.status_code == 400
    assert upstream.requests == []


def test_fetch_passthrough(client, upstream):
    upstream.handler = lambda request: httpx.Response(
        200, text="<html>now playing</html>", headers={"content-type": "text/html"}
    )

    response = client.get("/fetch", params={"url": "http://s.example/7.html"})

    assert response.status_code == 200
    assert response.text == "<html>now playing</html>"
    assert response.headers["content-type"].startswith("text/html")
    assert upstream.urls == ["http://s.example/7.html"]


def test_fetch_keeps_upstream_status(client, upstream):
    upstream.handler = lambda request: httpx.Response(404, text="missing")

    response = client.get("/fetch", params={"url": "http://s.example/status-json.xsl"})

    assert response.status_code == 404
    assert response.text == "missing"


def test_fetch_upstream_failure(client, upstream):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("timed out", request=request)

    upstream.handler = handler
    response = client.get("/fetch", params={"url": "http://s.example/7.html"})

    assert response.status_code == 502
    assert response.json() == {"error": "timed out"}


def test_fetch_rejects_hostless_url(client, upstream):
    response = client.get("/fetch", params={"url": "http://:80/live"})

    assert response.status_code == 400
    assert response.json() == {"error": "invalid url"}
    assert upstream.requests == []
