"""Google search step: link normalization, block classification, page handling."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from web_browse.exceptions import SearchBlockedError
from web_browse.search.google import build_search_url, is_blocked_page, normalize_google_link, search_google


class TestNormalizeLink:
    @pytest.mark.parametrize(
        ("href", "expected"),
        [
            ("https://example.com/a", "https://example.com/a"),
            ("/url?q=https://example.com/b&sa=U&ved=x", "https://example.com/b"),
            ("/url?q=https%3A%2F%2Fexample.com%2Fc%3Fx%3D1&sa=U", "https://example.com/c?x=1"),
            ("/search?q=more+results", None),
            ("https://maps.google.com/maps?q=x", None),
            ("/url?q=https://support.google.com/websearch", None),
            ("", None),
            (None, None),
        ],
    )
    def test_normalize(self, href, expected) -> None:
        assert normalize_google_link(href) == expected


class TestBlockClassification:
    def test_captcha_form(self) -> None:
        assert is_blocked_page({"hasCaptcha": True, "text": ""})

    def test_unusual_traffic_text(self) -> None:
        assert is_blocked_page({"hasCaptcha": False, "text": "Our systems have detected Unusual Traffic"})

    def test_plain_empty_page(self) -> None:
        assert not is_blocked_page({"hasCaptcha": False, "text": "Your search did not match any documents."})


def test_search_url_parameters() -> None:
    url = build_search_url("python asyncio", 7)
    assert url.startswith("https://www.google.com/search?q=python+asyncio")
    assert "num=7" in url and "hl=en" in url


def _frame(items):
    frame = MagicMock()
    frame.url = "https://www.google.com/search"
    frame.evaluate = AsyncMock(return_value=items)
    return frame


class TestSearchGoogle:
    @pytest.mark.anyio
    async def test_results_collected_from_all_frames(self, mock_context, mock_page_factory) -> None:
        page = mock_page_factory("https://www.google.com/search?q=x")
        broken = MagicMock()
        broken.url = "about:blank"
        broken.evaluate = AsyncMock(side_effect=Exception("frame detached"))
        page.frames = [
            _frame(
                [
                    {"title": "One", "href": "/url?q=https://one.example/&sa=U", "snippet": "first"},
                    {"title": "Internal", "href": "/search?q=x&start=10", "snippet": ""},
                ]
            ),
            broken,
            _frame([{"title": "Two", "href": "https://two.example/", "snippet": None}]),
        ]
        mock_context.queued_pages.append(page)

        out = await search_google(mock_context, "x", 5)

        assert [(r.title, r.link) for r in out] == [("One", "https://one.example/"), ("Two", "https://two.example/")]
        assert out[1].snippet == ""
        assert page.is_closed()

    @pytest.mark.anyio
    async def test_results_capped_at_requested_count(self, mock_context, mock_page_factory) -> None:
        page = mock_page_factory("https://www.google.com/search?q=x")
        page.frames = [_frame([{"title": f"R{i}", "href": f"https://r{i}.example/", "snippet": ""} for i in range(8)])]
        mock_context.queued_pages.append(page)

        out = await search_google(mock_context, "x", 3)

        assert len(out) == 3

    @pytest.mark.anyio
    async def test_zero_results_with_captcha_raises_blocked(self, mock_context, mock_page_factory) -> None:
        page = mock_page_factory("https://www.google.com/sorry/index")
        page.frames = [_frame([])]
        page.evaluate = AsyncMock(return_value={"title": "Sorry...", "text": "unusual traffic", "hasCaptcha": True})
        mock_context.queued_pages.append(page)

        with pytest.raises(SearchBlockedError):
            await search_google(mock_context, "x", 5)
        assert page.is_closed()

    @pytest.mark.anyio
    async def test_zero_results_without_block_is_empty(self, mock_context, mock_page_factory) -> None:
        page = mock_page_factory("https://www.google.com/search?q=zzzz")
        page.frames = [_frame([])]
        page.evaluate = AsyncMock(
            return_value={"title": "zzzz - Google Search", "text": "No results", "hasCaptcha": False}
        )
        mock_context.queued_pages.append(page)

        assert await search_google(mock_context, "zzzz", 5) == []

    @pytest.mark.anyio
    async def test_consent_screen_dismissed_then_renavigated(self, mock_context, mock_page_factory) -> None:
        page = mock_page_factory("https://consent.google.com/ml?continue=x")
        missing = MagicMock()
        missing.count = AsyncMock(return_value=0)
        present = MagicMock()
        present.count = AsyncMock(return_value=1)
        present.first.click = AsyncMock()
        page.locator = MagicMock(side_effect=lambda selector: present if "Accept all" in selector else missing)
        page.frames = [_frame([{"title": "One", "href": "https://one.example/", "snippet": ""}])]
        mock_context.queued_pages.append(page)

        out = await search_google(mock_context, "x", 5)

        present.first.click.assert_awaited_once()
        assert page.goto.await_count == 2
        assert len(out) == 1
