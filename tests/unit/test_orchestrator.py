"""Search fallback chain: Google -> DuckDuckGo HTML -> DuckDuckGo lite."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from web_browse.exceptions import SearchBlockedError, SearchEngineError
from web_browse.models import SearchResult
from web_browse.search import orchestrator

GOOGLE_HIT = SearchResult(title="G", link="https://g.example/")
DDG_HIT = SearchResult(title="D", link="https://d.example/")
LITE_HIT = SearchResult(title="L", link="https://l.example/")


@pytest.fixture
def engines(monkeypatch):
    google = AsyncMock(return_value=[GOOGLE_HIT])
    html = AsyncMock(return_value=[DDG_HIT])
    lite = AsyncMock(return_value=[LITE_HIT])
    monkeypatch.setattr(orchestrator, "search_google", google)
    monkeypatch.setattr(orchestrator, "search_duckduckgo_html", html)
    monkeypatch.setattr(orchestrator, "search_duckduckgo_lite", lite)
    return google, html, lite


class TestFallbackChain:
    @pytest.mark.anyio
    async def test_primary_results_short_circuit(self, engines) -> None:
        google, html, lite = engines
        out = await orchestrator.search_web(MagicMock(), MagicMock(), "q", 5)
        assert out == [GOOGLE_HIT]
        html.assert_not_awaited()
        lite.assert_not_awaited()

    @pytest.mark.anyio
    async def test_blocked_primary_falls_back_silently(self, engines) -> None:
        google, html, lite = engines
        google.side_effect = SearchBlockedError("Google", "captcha")

        out = await orchestrator.search_web(MagicMock(), MagicMock(), "q", 5)

        assert out == [DDG_HIT]
        lite.assert_not_awaited()

    @pytest.mark.anyio
    async def test_empty_primary_falls_back(self, engines) -> None:
        google, html, lite = engines
        google.return_value = []
        assert await orchestrator.search_web(MagicMock(), MagicMock(), "q", 5) == [DDG_HIT]

    @pytest.mark.anyio
    async def test_empty_secondary_tries_lite(self, engines) -> None:
        google, html, lite = engines
        google.side_effect = SearchBlockedError("Google")
        html.return_value = []

        assert await orchestrator.search_web(MagicMock(), MagicMock(), "q", 5) == [LITE_HIT]
        lite.assert_awaited_once()

    @pytest.mark.anyio
    async def test_secondary_error_tries_lite(self, engines) -> None:
        google, html, lite = engines
        google.return_value = []
        html.side_effect = SearchEngineError("DuckDuckGo", 500, "Server Error")

        assert await orchestrator.search_web(MagicMock(), MagicMock(), "q", 5) == [LITE_HIT]

    @pytest.mark.anyio
    async def test_everything_failing_is_empty_not_error(self, engines) -> None:
        google, html, lite = engines
        google.side_effect = RuntimeError("browser gone")
        html.side_effect = SearchBlockedError("DuckDuckGo", "HTTP 202")
        lite.side_effect = SearchEngineError("DuckDuckGo", 503)

        assert await orchestrator.search_web(MagicMock(), MagicMock(), "q", 5) == []

    @pytest.mark.anyio
    async def test_no_context_skips_primary(self, engines) -> None:
        google, html, lite = engines
        assert await orchestrator.search_web(None, MagicMock(), "q", 5) == [DDG_HIT]
        google.assert_not_awaited()

    @pytest.mark.anyio
    @pytest.mark.parametrize(("requested", "expected"), [(0, 1), (-3, 1), (7, 7), (50, 20)])
    async def test_result_count_clamped(self, engines, requested, expected) -> None:
        google, html, lite = engines
        await orchestrator.search_web(MagicMock(), MagicMock(), "q", requested)
        assert google.await_args.args[2] == expected
