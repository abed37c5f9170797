"""Google search through the live browser session.

Results are read from every frame on the page (the results list is
sometimes rendered inside an iframe).  Raw anchors are pulled out in-page;
redirect unwrapping and filtering happen in :func:`normalize_google_link`.
"""

from __future__ import annotations

import logging
import random
from typing import TYPE_CHECKING, Any
from urllib.parse import parse_qs, quote_plus, urlsplit

from web_browse.exceptions import SearchBlockedError
from web_browse.models import SearchResult, clamp_num_results

if TYPE_CHECKING:
    from playwright.async_api import BrowserContext, Page

logger = logging.getLogger(__name__)

ENGINE = "Google"
DEFAULT_NAVIGATION_TIMEOUT_MS = 20_000

CONSENT_BUTTON_SELECTORS: tuple[str, ...] = (
    "button#L2AGLb",
    "button:has-text('I agree')",
    "button:has-text('Accept all')",
    "button:has-text('Accept')",
)
CONSENT_CLICK_TIMEOUT_MS = 5_000

BLOCK_SIGNALS: tuple[str, ...] = ("unusual traffic", "before you continue", "sorry", "detected", "our systems")
_CAPTCHA_SELECTOR = "#captcha-form, form[action*='sorry'], .g-recaptcha"

_EXTRACT_JS = """
() => {
    const items = [];
    for (const titleEl of document.querySelectorAll("h3")) {
        const title = (titleEl.textContent || "").trim();
        const linkEl = titleEl.closest("a[href]");
        const href = linkEl ? linkEl.getAttribute("href") : null;
        if (!title || !href) continue;

        let snippet = "";
        const container = linkEl.closest("div.MjjYud, div.g, div[data-snf], div[data-sncf]")
            || (linkEl.parentElement && linkEl.parentElement.parentElement);
        if (container) {
            const snippetEl = container.querySelector(".VwiC3b, .yXK7lf, .lEBKkf, span.aCOpRe");
            snippet = snippetEl ? (snippetEl.textContent || "").trim() : "";
            if (!snippet) {
                const spans = Array.from(container.querySelectorAll("span"))
                    .map((el) => (el.textContent || "").trim())
                    .filter((text) => text.length > 40 && text !== title);
                snippet = spans[0] || "";
            }
        }
        items.push({ title, href, snippet });
    }
    return items;
}
"""

_DIAGNOSTICS_JS = """
(selector) => ({
    title: document.title || "",
    text: ((document.body && document.body.innerText) || "").slice(0, 500),
    hasCaptcha: Boolean(document.querySelector(selector)),
    resultCount: document.querySelectorAll("h3").length,
    searchBoxCount: document.querySelectorAll("input[name='q'], textarea[name='q']").length,
})
"""


def build_search_url(query: str, num: int) -> str:
    return f"https://www.google.com/search?q={quote_plus(query)}&num={num}&hl=en&gl=us&pws=0&safe=off"


def normalize_google_link(href: str | None) -> str | None:
    """Unwrap ``/url?q=`` redirects; drop relative and Google-internal links.

    Returns:
        The external destination, or ``None`` if the link should be discarded.
    """
    if not href:
        return None
    link = href
    if href.startswith("/url?"):
        target = parse_qs(urlsplit(href).query).get("q")
        link = target[0] if target else href
    if link.startswith("/") or "google.com" in link:
        return None
    return link


def is_blocked_page(diagnostics: dict[str, Any]) -> bool:
    """True if the zero-result page looks like an automated-access block."""
    if diagnostics.get("hasCaptcha"):
        return True
    text = str(diagnostics.get("text", "")).lower()
    return any(signal in text for signal in BLOCK_SIGNALS)


async def _pause(page: Page) -> None:
    await page.wait_for_timeout(200 + random.randint(0, 300))


async def _dismiss_consent(page: Page) -> None:
    for selector in CONSENT_BUTTON_SELECTORS:
        button = page.locator(selector)
        if await button.count():
            logger.debug("Dismissing consent screen via %s", selector)
            await button.first.click(timeout=CONSENT_CLICK_TIMEOUT_MS, force=True)
            await page.wait_for_load_state("domcontentloaded", timeout=15_000)
            return


async def _collect_results(page: Page) -> list[SearchResult]:
    results: list[SearchResult] = []
    for frame in page.frames:
        try:
            raw_items = await frame.evaluate(_EXTRACT_JS)
        except Exception:
            logger.debug("Result extraction failed in frame %s", frame.url)
            continue
        for item in raw_items or []:
            link = normalize_google_link(item.get("href"))
            if link is None:
                continue
            results.append(SearchResult(title=item["title"], link=link, snippet=item.get("snippet") or ""))
    return results


async def search_google(
    context: BrowserContext,
    query: str,
    num: int,
    *,
    timeout_ms: int = DEFAULT_NAVIGATION_TIMEOUT_MS,
) -> list[SearchResult]:
    """Run *query* on Google in a fresh page of *context*.

    Returns:
        Up to *num* results (clamped to ``[1, 20]``); empty if Google simply found nothing.

    Raises:
        SearchBlockedError: Zero results and the page shows captcha or block wording.
    """
    num = clamp_num_results(num)
    search_url = build_search_url(query, num)
    page = await context.new_page()

    try:
        await page.goto(search_url, wait_until="domcontentloaded", timeout=timeout_ms)
        await _pause(page)

        if "consent.google.com" in page.url:
            await _dismiss_consent(page)
            await page.goto(search_url, wait_until="domcontentloaded", timeout=timeout_ms)
            await _pause(page)

        await page.wait_for_selector("body", timeout=10_000)
        try:
            await page.wait_for_function("() => document.querySelectorAll('h3').length > 0", timeout=10_000)
        except Exception:
            logger.debug("No result headings appeared for %r", query)

        results = await _collect_results(page)

        if not results:
            diagnostics = await page.evaluate(_DIAGNOSTICS_JS, _CAPTCHA_SELECTOR)
            if is_blocked_page(diagnostics):
                raise SearchBlockedError(ENGINE, diagnostics.get("title") or page.url)
            logger.warning(
                "Google returned zero results (url=%s, title=%s, results=%s, searchBoxes=%s)",
                page.url,
                diagnostics.get("title"),
                diagnostics.get("resultCount"),
                diagnostics.get("searchBoxCount"),
            )

        return results[:num]
    finally:
        if not page.is_closed():
            try:
                await page.close()
            except Exception:
                logger.debug("Search page close failed")
