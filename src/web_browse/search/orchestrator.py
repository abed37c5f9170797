"""Search fallback chain: Google (browser) -> DuckDuckGo HTML -> DuckDuckGo lite.

Each step runs only if everything before it produced nothing.  Failures at
any step are logged and treated as "no results"; an empty list after the
last step is a valid outcome, not an error.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

from web_browse.models import SearchResult, clamp_num_results
from web_browse.search.duckduckgo import search_duckduckgo_html, search_duckduckgo_lite
from web_browse.search.google import DEFAULT_NAVIGATION_TIMEOUT_MS, search_google

if TYPE_CHECKING:
    import httpx
    from playwright.async_api import BrowserContext

logger = logging.getLogger(__name__)


async def _run_step(name: str, step: Callable[[], Awaitable[list[SearchResult]]]) -> list[SearchResult]:
    try:
        return await step()
    except Exception as exc:
        logger.warning("%s search failed: %s", name, exc)
        return []


async def search_web(
    context: BrowserContext | None,
    http_client: httpx.AsyncClient,
    query: str,
    num_results: int,
    *,
    timeout_ms: int = DEFAULT_NAVIGATION_TIMEOUT_MS,
) -> list[SearchResult]:
    """Search for *query*, falling back across engines.  Never raises.

    Args:
        context: Live browsing context for the Google step (``None`` skips it).
        http_client: Client for the DuckDuckGo steps.
        query: Search terms.
        num_results: Requested result count, clamped to ``[1, 20]``.
        timeout_ms: Navigation timeout for the browser step.
    """
    num = clamp_num_results(num_results)
    results: list[SearchResult] = []

    if context is not None:
        results = await _run_step("Google", lambda: search_google(context, query, num, timeout_ms=timeout_ms))

    if not results:
        logger.info("Google returned no results. Falling back to DuckDuckGo...")
        results = await _run_step("DuckDuckGo", lambda: search_duckduckgo_html(http_client, query, num))

    if not results:
        logger.info("DuckDuckGo returned no results. Trying the lite endpoint...")
        results = await _run_step("DuckDuckGo lite", lambda: search_duckduckgo_lite(http_client, query, num))

    return results[:num]
