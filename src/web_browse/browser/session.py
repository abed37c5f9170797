"""Browser automation session over the remote-debugging protocol.

A :class:`BrowserSession` is one browser process (launched by us or already
running) plus one Playwright CDP connection plus one browsing context.  The
daemon holds a single session for its whole lifetime; one-shot CLI runs use
:func:`one_shot_session` for the duration of a single command.

Usage::

    registry = ProcessRegistry()
    async with one_shot_session(registry, CdpOptions(True, True, 9225)) as session:
        page = await session.new_page()
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import TYPE_CHECKING

from playwright.async_api import async_playwright

from web_browse.browser.launcher import (
    CDP_HOST,
    DEFAULT_LAUNCH_TIMEOUT_SEC,
    CdpOptions,
    LaunchedBrowser,
    launch_browser,
)
from web_browse.browser.process import ProcessRegistry
from web_browse.models import PageInfo

if TYPE_CHECKING:
    from playwright.async_api import Browser, BrowserContext, Page, Playwright

logger = logging.getLogger(__name__)

# Headless builds do not define chrome.runtime; several challenge scripts probe it.
CHROME_RUNTIME_INIT_SCRIPT = """
if (!window.chrome) { window.chrome = {}; }
if (!window.chrome.runtime) { window.chrome.runtime = {}; }
"""


class BrowserSession:
    """One browser process, one CDP connection, one shared browsing context."""

    def __init__(
        self,
        registry: ProcessRegistry,
        *,
        cdp_port: int,
        launch: bool = True,
        profile_dir: str | Path | None = None,
        binary: str | None = None,
        launch_timeout_sec: float = DEFAULT_LAUNCH_TIMEOUT_SEC,
    ) -> None:
        self._registry = registry
        self._cdp_port = cdp_port
        self._launch = launch
        self._profile_dir = profile_dir
        self._binary = binary
        self._launch_timeout_sec = launch_timeout_sec

        self._launched: LaunchedBrowser | None = None
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None
        self._keep_alive: Page | None = None
        self._closed = False

    # -- lifecycle ------------------------------------------------------------

    async def start(self, *, keep_alive: bool = True) -> None:
        """Launch (or attach to) the browser and connect to it.

        Raises:
            BinaryNotFoundError: No browser binary could be resolved.
            LaunchTimeoutError: The launched browser never exposed its endpoint.
        """
        if self._launch:
            self._launched = await launch_browser(
                self._cdp_port,
                self._registry,
                profile_dir=self._profile_dir,
                binary_override=self._binary,
                timeout_sec=self._launch_timeout_sec,
            )
            endpoint = self._launched.cdp_url
        else:
            endpoint = f"http://{CDP_HOST}:{self._cdp_port}"

        try:
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.connect_over_cdp(endpoint)
            if self._browser.contexts:
                self._context = self._browser.contexts[0]
            else:
                self._context = await self._browser.new_context()
            await self._context.add_init_script(script=CHROME_RUNTIME_INIT_SCRIPT)
            if keep_alive:
                self._keep_alive = await self._context.new_page()
        except Exception:
            await self.close()
            raise

        logger.info("Connected to browser over CDP at %s", endpoint)

    async def close(self) -> None:
        """Disconnect and tear down anything we launched.  Idempotent, never raises."""
        if self._closed:
            return
        self._closed = True

        if self._launched is not None and self._context is not None:
            for page in list(self._context.pages):
                try:
                    await page.close()
                except Exception:
                    logger.debug("Page close failed during session teardown")

        if self._browser is not None:
            try:
                await self._browser.close()
            except Exception:
                logger.debug("Browser disconnect failed")
        if self._playwright is not None:
            try:
                await self._playwright.stop()
            except Exception:
                logger.debug("Playwright stop failed")

        if self._launched is not None:
            self._launched.terminate(self._registry)

        self._browser = None
        self._context = None
        self._keep_alive = None

    # -- accessors ------------------------------------------------------------

    @property
    def context(self) -> BrowserContext:
        if self._context is None:
            raise RuntimeError("Browser session is not started")
        return self._context

    @property
    def keep_alive_page(self) -> Page | None:
        return self._keep_alive

    @property
    def process_id(self) -> int | None:
        return self._launched.pid if self._launched else None

    @property
    def debugging_port(self) -> int:
        return self._launched.port if self._launched else self._cdp_port

    @property
    def is_closed(self) -> bool:
        return self._closed

    async def new_page(self) -> Page:
        return await self.context.new_page()

    def pages(self) -> list[PageInfo]:
        """Snapshot of every page in the context.  Read-only."""
        if self._context is None:
            return []
        return [PageInfo(url=page.url, closed=page.is_closed()) for page in self._context.pages]

    async def cleanup_pages(self) -> int:
        """Close every page except the keep-alive page.

        Returns:
            Number of pages closed.
        """
        if self._context is None:
            return 0
        return await cleanup_context_pages(self._context, self._keep_alive)


async def cleanup_context_pages(context: BrowserContext, keep_alive: Page | None) -> int:
    """Force-close every page in *context* except *keep_alive*.  Never raises."""
    closed = 0
    for page in list(context.pages):
        if page is keep_alive:
            continue
        try:
            if not page.is_closed():
                await page.close()
                closed += 1
        except Exception:
            logger.debug("Failed to close leaked page %s", getattr(page, "url", "?"))
    if closed:
        logger.debug("Closed %d leftover page(s)", closed)
    return closed


@asynccontextmanager
async def one_shot_session(
    registry: ProcessRegistry,
    options: CdpOptions,
    *,
    binary: str | None = None,
    profile_dir: str | Path | None = None,
    launch_timeout_sec: float = DEFAULT_LAUNCH_TIMEOUT_SEC,
) -> AsyncIterator[BrowserSession]:
    """Session scoped to a single CLI command.

    With ``options.cdp_start`` a browser is launched and fully torn down on
    exit; otherwise the session attaches to the browser already listening on
    ``options.cdp_port`` and only disconnects.
    """
    session = BrowserSession(
        registry,
        cdp_port=options.cdp_port,
        launch=options.cdp_start,
        profile_dir=profile_dir,
        binary=binary,
        launch_timeout_sec=launch_timeout_sec,
    )
    await session.start(keep_alive=False)
    try:
        yield session
    finally:
        await session.close()
