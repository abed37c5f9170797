"""Read pages through a live browser context.

One page per URL: open, navigate, wait out any bot-protection challenge,
render, close.  Every failure is folded into a :class:`FetchResult` carrying
an error string so a bad URL never takes down the caller (or the daemon
queue).
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from playwright.async_api import TimeoutError as PlaywrightTimeout

from web_browse.browser.bot_protection import wait_for_bot_protection_to_clear
from web_browse.browser.debug_dump import dump_debug_artifacts
from web_browse.exceptions import NavigationTimeoutError
from web_browse.extraction.content import render
from web_browse.models import FetchResult

if TYPE_CHECKING:
    from playwright.async_api import BrowserContext, Page

    from web_browse.settings.config import Settings

logger = logging.getLogger(__name__)


@dataclass
class FetchOptions:
    navigation_timeout_ms: int = 45_000
    bot_protection_timeout_ms: int = 30_000
    debug_dump_enabled: bool = False
    debug_dump_dir: str | Path | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> FetchOptions:
        return cls(
            navigation_timeout_ms=settings.fetch.navigation_timeout_ms,
            bot_protection_timeout_ms=settings.fetch.bot_protection_timeout_ms,
            debug_dump_enabled=settings.debug.dump_enabled,
            debug_dump_dir=settings.debug.dump_dir,
        )


async def _goto(page: Page, url: str, timeout_ms: int) -> None:
    try:
        await page.goto(url, wait_until="domcontentloaded", timeout=timeout_ms)
    except PlaywrightTimeout as exc:
        raise NavigationTimeoutError(url, timeout_ms) from exc


async def fetch_url(
    context: BrowserContext,
    url: str,
    truncate: bool,
    options: FetchOptions | None = None,
) -> FetchResult:
    """Fetch and render one URL in a fresh page of *context*.

    Returns:
        A :class:`FetchResult`; ``error`` is set (and content empty) on failure.
    """
    options = options or FetchOptions()
    page: Page | None = None
    try:
        page = await context.new_page()
        await _goto(page, url, options.navigation_timeout_ms)
        await wait_for_bot_protection_to_clear(page, url, timeout_ms=options.bot_protection_timeout_ms)

        html = await page.content()
        # readability and markdownify are CPU-bound; keep the loop serving /health
        parsed = await asyncio.to_thread(render, html, url, truncate)
        return FetchResult(url=url, title=parsed.title, content=parsed.content)
    except Exception as exc:
        logger.debug("Fetch failed for %s: %s", url, exc)
        if page is not None and not page.is_closed():
            dump_dir = await dump_debug_artifacts(
                page,
                reason="fetch-error",
                url=url,
                enabled=options.debug_dump_enabled,
                base_dir=options.debug_dump_dir or ".",
            )
            if dump_dir:
                logger.warning("Debug dump saved: %s", dump_dir)
        return FetchResult.failed(url, str(exc) or exc.__class__.__name__)
    finally:
        if page is not None and not page.is_closed():
            try:
                await page.close()
            except Exception:
                logger.debug("Page close failed for %s", url)


async def fetch_urls(
    context: BrowserContext,
    urls: list[str],
    truncate: bool,
    options: FetchOptions | None = None,
) -> list[FetchResult]:
    """Fetch *urls* one after another; results keep input order."""
    results = []
    for url in urls:
        results.append(await fetch_url(context, url, truncate, options))
    return results
