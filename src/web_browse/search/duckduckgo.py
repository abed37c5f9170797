"""DuckDuckGo search over plain HTTP (full HTML and "lite" endpoints)."""

from __future__ import annotations

import logging
import re
from urllib.parse import quote_plus, unquote

import httpx
from bs4 import BeautifulSoup, Tag

from web_browse.exceptions import SearchBlockedError, SearchEngineError
from web_browse.models import SearchResult

logger = logging.getLogger(__name__)

ENGINE = "DuckDuckGo"
HTML_ENDPOINT = "https://html.duckduckgo.com/html/?q="
LITE_ENDPOINT = "https://duckduckgo.com/lite/?q="

_UDDG_RE = re.compile(r"uddg=([^&]+)")


def unwrap_duckduckgo_link(href: str | None) -> str | None:
    """Decode the destination carried in a ``uddg=`` redirect wrapper; pass direct links through."""
    if not href:
        return href
    match = _UDDG_RE.search(href)
    if match:
        return unquote(match.group(1))
    return href


def _is_internal(link: str) -> bool:
    return "duckduckgo.com" in link


def _text(elem: Tag | None) -> str:
    return elem.get_text(strip=True) if elem is not None else ""


def extract_duckduckgo_results(html: str, num: int) -> list[SearchResult]:
    """Parse the full-HTML results page.  Each ``.result`` contributes its first ``.result__a``."""
    soup = BeautifulSoup(html, "lxml")
    results: list[SearchResult] = []

    for container in soup.select(".result"):
        if len(results) >= num:
            break
        title_elem = container.select_one(".result__a")
        title = _text(title_elem)
        link = unwrap_duckduckgo_link(title_elem.get("href") if title_elem is not None else None)
        snippet = _text(container.select_one(".result__snippet"))

        if title and link and not _is_internal(link):
            results.append(SearchResult(title=title, link=link, snippet=snippet))

    return results


def extract_duckduckgo_lite_results(html: str, num: int) -> list[SearchResult]:
    """Parse the lite results page: table rows, snippet in the row after the link."""
    soup = BeautifulSoup(html, "lxml")
    results: list[SearchResult] = []

    for anchor in soup.select("a.result-link"):
        if len(results) >= num:
            break
        title = _text(anchor)
        link = unwrap_duckduckgo_link(anchor.get("href"))

        snippet = ""
        row = anchor.find_parent("tr")
        next_row = row.find_next_sibling("tr") if row is not None else None
        if next_row is not None:
            snippet = _text(next_row.select_one(".result-snippet"))

        if title and link and not _is_internal(link):
            results.append(SearchResult(title=title, link=link, snippet=snippet))

    return results


async def _get(client: httpx.AsyncClient, url: str) -> str:
    response = await client.get(url)
    if response.status_code == 202:
        raise SearchBlockedError(ENGINE, "HTTP 202")
    if not response.is_success:
        raise SearchEngineError(ENGINE, response.status_code, response.reason_phrase)
    return response.text


async def search_duckduckgo_html(client: httpx.AsyncClient, query: str, num: int) -> list[SearchResult]:
    """Query the full-HTML endpoint.

    Raises:
        SearchBlockedError: DuckDuckGo answered 202 (throttled).
        SearchEngineError: Any other non-success status.
    """
    html = await _get(client, HTML_ENDPOINT + quote_plus(query))
    return extract_duckduckgo_results(html, num)


async def search_duckduckgo_lite(client: httpx.AsyncClient, query: str, num: int) -> list[SearchResult]:
    """Query the lite endpoint.  Same error contract as :func:`search_duckduckgo_html`."""
    html = await _get(client, LITE_ENDPOINT + quote_plus(query))
    return extract_duckduckgo_lite_results(html, num)
