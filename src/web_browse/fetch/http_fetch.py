"""Plain-HTTP page fetch (no browser) and the shared outbound HTTP client."""

from __future__ import annotations

import asyncio
import logging

import httpx

from web_browse.extraction.content import render
from web_browse.models import FetchResult
from web_browse.settings.config import DEFAULT_USER_AGENT

logger = logging.getLogger(__name__)

DEFAULT_HTTP_TIMEOUT_SEC = 15.0
_HTML_TYPES = ("text/html", "application/xhtml")


def default_headers(user_agent: str = DEFAULT_USER_AGENT, accept_language: str = "en-US,en;q=0.9") -> dict[str, str]:
    return {
        "User-Agent": user_agent,
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        "Accept-Language": accept_language,
    }


def build_http_client(
    *,
    user_agent: str = DEFAULT_USER_AGENT,
    accept_language: str = "en-US,en;q=0.9",
    timeout_sec: float = DEFAULT_HTTP_TIMEOUT_SEC,
) -> httpx.AsyncClient:
    """Async client with browser-like headers, pinned to IPv4.

    Some search endpoints stall on IPv6 from residential networks, so the
    transport binds to an IPv4 local address.
    """
    return httpx.AsyncClient(
        headers=default_headers(user_agent, accept_language),
        timeout=timeout_sec,
        follow_redirects=True,
        transport=httpx.AsyncHTTPTransport(local_address="0.0.0.0"),
    )


async def fetch_url_via_http(client: httpx.AsyncClient, url: str, truncate: bool = True) -> FetchResult:
    """GET *url* and render it without a browser.

    Only HTML responses are rendered; anything else is reported as an error.
    """
    try:
        response = await client.get(url)
        if not response.is_success:
            return FetchResult.failed(url, f"HTTP {response.status_code} {response.reason_phrase}".rstrip())

        content_type = response.headers.get("content-type", "")
        if not any(kind in content_type for kind in _HTML_TYPES):
            return FetchResult.failed(url, f"Not HTML: {content_type}")

        parsed = await asyncio.to_thread(render, response.text, url, truncate)
        return FetchResult(url=url, title=parsed.title, content=parsed.content)
    except httpx.TimeoutException:
        timeout = client.timeout.read or DEFAULT_HTTP_TIMEOUT_SEC
        return FetchResult.failed(url, f"Timeout after {int(timeout)}s")
    except httpx.HTTPError as exc:
        logger.debug("HTTP fetch failed for %s: %s", url, exc)
        return FetchResult.failed(url, str(exc) or exc.__class__.__name__)
