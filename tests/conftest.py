"""web-browse test configuration: shared fixtures for unit and integration tests."""

from __future__ import annotations

import asyncio
import time
from unittest.mock import AsyncMock, MagicMock

import pytest


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "integration: needs a real browser binary and network access")
    config.addinivalue_line("markers", "slow: takes more than a few seconds")


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_settings_cache(tmp_path, monkeypatch):
    """Clear the settings LRU cache between tests and isolate TOML lookup."""
    from web_browse.settings.config import get_settings

    monkeypatch.setenv("WEB_BROWSE_CONFIG_DIR", str(tmp_path / "config"))
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


# ---------------------------------------------------------------------------
# Mock Playwright objects
# ---------------------------------------------------------------------------


def make_mock_page(url: str = "about:blank", *, html: str = "", title: str = "") -> MagicMock:
    """A Playwright ``Page`` stand-in with async navigation/reading methods."""
    page = MagicMock()
    page.url = url
    page.goto = AsyncMock()
    page.content = AsyncMock(return_value=html)
    page.title = AsyncMock(return_value=title)
    page.evaluate = AsyncMock(return_value=False)
    page.wait_for_timeout = AsyncMock()
    page.wait_for_function = AsyncMock()
    page.wait_for_load_state = AsyncMock()
    page.wait_for_selector = AsyncMock()
    page.screenshot = AsyncMock()
    page.frames = []

    state = {"closed": False}

    async def _close() -> None:
        state["closed"] = True

    page.close = AsyncMock(side_effect=_close)
    page.is_closed = MagicMock(side_effect=lambda: state["closed"])
    return page


@pytest.fixture
def mock_page_factory():
    return make_mock_page


@pytest.fixture
def mock_context():
    """A ``BrowserContext`` stand-in whose ``new_page`` hands out queued pages."""
    context = MagicMock()
    context.pages = []
    queued: list[MagicMock] = []

    async def _new_page() -> MagicMock:
        page = queued.pop(0) if queued else make_mock_page()
        context.pages.append(page)
        return page

    context.new_page = AsyncMock(side_effect=_new_page)
    context.queued_pages = queued
    return context


# ---------------------------------------------------------------------------
# Event loop responsiveness
# ---------------------------------------------------------------------------


@pytest.fixture
def run_with_ticker():
    """Await a coroutine next to a 10 ms ticker; returns ``(result, longest_gap_sec)``."""

    async def run(coro):
        gaps: list[float] = []
        done = asyncio.Event()

        async def tick() -> None:
            last = time.monotonic()
            while not done.is_set():
                await asyncio.sleep(0.01)
                now = time.monotonic()
                gaps.append(now - last)
                last = now

        ticker = asyncio.create_task(tick())
        await asyncio.sleep(0)
        try:
            result = await coro
        finally:
            done.set()
            await ticker
        return result, max(gaps, default=0.0)

    return run
