"""Daemon vs one-shot dispatch for search and fetch."""

from __future__ import annotations

import signal
from unittest.mock import MagicMock

import pytest

from web_browse.browser.process import ProcessRegistry
from web_browse.cli import runner as runner_mod
from web_browse.cli.runner import BrowseOptions, released_on_exit, run_fetch, run_search
from web_browse.models import FetchResult
from web_browse.settings.config import Settings


@pytest.fixture
def daemon_client(monkeypatch):
    client = MagicMock()
    client.ensure_running.return_value = {"status": "ok"}
    monkeypatch.setattr(runner_mod.DaemonClient, "from_settings", classmethod(lambda cls, s: client))
    return client


class TestDaemonDispatch:
    def test_search_clamps_and_forwards(self, daemon_client) -> None:
        daemon_client.send_command.return_value = [{"title": "T", "link": "https://t/", "snippet": "s"}]
        options = BrowseOptions(cdp_profile="/tmp/prof", browser_bin="/usr/bin/brave")

        results = run_search("python", 99, options, Settings())

        daemon_client.ensure_running.assert_called_once_with(
            ["--cdp-profile", "/tmp/prof", "--browser-bin", "/usr/bin/brave"]
        )
        daemon_client.send_command.assert_called_once_with("search", {"query": "python", "numResults": 20})
        assert results[0].link == "https://t/"

    def test_single_url_uses_fetch(self, daemon_client) -> None:
        daemon_client.send_command.return_value = {"url": "https://a/", "title": "A", "content": "x", "error": None}

        results = run_fetch(["https://a/"], True, BrowseOptions(), Settings())

        daemon_client.send_command.assert_called_once_with("fetch", {"url": "https://a/", "truncate": True})
        assert results == [FetchResult(url="https://a/", title="A", content="x")]

    def test_many_urls_use_fetch_many(self, daemon_client) -> None:
        daemon_client.send_command.return_value = [{"url": "https://a/"}, {"url": "https://b/", "error": "boom"}]

        results = run_fetch(["https://a/", "https://b/"], False, BrowseOptions(), Settings())

        daemon_client.send_command.assert_called_once_with(
            "fetchMany", {"urls": ["https://a/", "https://b/"], "truncate": False}
        )
        assert [r.error for r in results] == [None, "boom"]


class TestOneShotDispatch:
    def test_http_fetch_skips_daemon(self, daemon_client, monkeypatch) -> None:
        async def fake_one_shot(urls, truncate, options, settings, registry):
            return [FetchResult(url=u) for u in urls]

        monkeypatch.setattr(runner_mod, "_one_shot_fetch", fake_one_shot)

        results = run_fetch(["https://a/"], True, BrowseOptions(http=True), Settings())

        assert [r.url for r in results] == ["https://a/"]
        daemon_client.send_command.assert_not_called()

    def test_no_daemon_search_releases_registry(self, daemon_client, monkeypatch) -> None:
        registries = []

        async def fake_one_shot(query, num, options, settings, registry):
            registries.append(registry)
            raise RuntimeError("browser crashed")

        monkeypatch.setattr(runner_mod, "_one_shot_search", fake_one_shot)
        release_all = MagicMock()
        monkeypatch.setattr(ProcessRegistry, "release_all", release_all)

        with pytest.raises(RuntimeError):
            run_search("q", 5, BrowseOptions(no_daemon=True), Settings())

        assert len(registries) == 1
        release_all.assert_called_once()
        daemon_client.ensure_running.assert_not_called()


def test_released_on_exit_restores_sigterm_handler() -> None:
    before = signal.getsignal(signal.SIGTERM)
    registry = MagicMock()

    with released_on_exit(registry):
        assert signal.getsignal(signal.SIGTERM) is not before

    registry.release_all.assert_called_once()
    assert signal.getsignal(signal.SIGTERM) == before
