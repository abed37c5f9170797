"""Plain-HTTP fetch path."""

from __future__ import annotations

import time

import httpx
import pytest

from web_browse.fetch import http_fetch
from web_browse.fetch.http_fetch import build_http_client, default_headers, fetch_url_via_http

PAGE = "<html><head><title>Plain Page</title></head><body><p>Served without a browser.</p></body></html>"


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler), timeout=5.0)


class TestFetchViaHttp:
    @pytest.mark.anyio
    async def test_html_is_rendered(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text=PAGE, headers={"content-type": "text/html; charset=utf-8"})

        async with _client(handler) as client:
            result = await fetch_url_via_http(client, "https://plain.example/")

        assert result.error is None
        assert result.title == "Plain Page"
        assert "Served without a browser." in result.content

    @pytest.mark.anyio
    async def test_rendering_runs_off_the_event_loop(self, run_with_ticker, monkeypatch) -> None:
        real_render = http_fetch.render

        def slow_render(*args):
            time.sleep(0.4)
            return real_render(*args)

        monkeypatch.setattr(http_fetch, "render", slow_render)

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text=PAGE, headers={"content-type": "text/html"})

        async with _client(handler) as client:
            result, longest_gap = await run_with_ticker(fetch_url_via_http(client, "https://plain.example/"))

        assert result.title == "Plain Page"
        assert longest_gap < 0.3

    @pytest.mark.anyio
    async def test_non_html_rejected(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"%PDF-1.7", headers={"content-type": "application/pdf"})

        async with _client(handler) as client:
            result = await fetch_url_via_http(client, "https://plain.example/doc.pdf")

        assert result.error == "Not HTML: application/pdf"
        assert result.content == ""

    @pytest.mark.anyio
    async def test_http_error_status(self) -> None:
        async with _client(lambda request: httpx.Response(404)) as client:
            result = await fetch_url_via_http(client, "https://plain.example/missing")
        assert result.error == "HTTP 404 Not Found"

    @pytest.mark.anyio
    async def test_timeout(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        async with _client(handler) as client:
            result = await fetch_url_via_http(client, "https://slow.example/")
        assert result.error == "Timeout after 5s"

    @pytest.mark.anyio
    async def test_connection_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with _client(handler) as client:
            result = await fetch_url_via_http(client, "https://down.example/")
        assert result.error == "connection refused"


def test_default_headers_look_like_a_browser() -> None:
    headers = default_headers("TestAgent/1.0", "de-DE")
    assert headers["User-Agent"] == "TestAgent/1.0"
    assert headers["Accept-Language"] == "de-DE"
    assert headers["Accept"].startswith("text/html")


@pytest.mark.anyio
async def test_built_client_carries_headers_and_follows_redirects() -> None:
    client = build_http_client(user_agent="TestAgent/2.0", timeout_sec=7)
    try:
        assert client.headers["user-agent"] == "TestAgent/2.0"
        assert client.follow_redirects is True
        assert client.timeout.read == 7
    finally:
        await client.aclose()
