"""Dispatch search/fetch either to the daemon or to a one-shot browser.

The one-shot path owns a :class:`ProcessRegistry` for its single command and
releases it on every way out: normal return, exception, SIGTERM.
"""

from __future__ import annotations

import asyncio
import logging
import signal
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass

from web_browse.browser.launcher import resolve_cdp_options
from web_browse.browser.process import ProcessRegistry
from web_browse.browser.session import one_shot_session
from web_browse.daemon.client import DaemonClient
from web_browse.fetch.fetcher import FetchOptions, fetch_urls
from web_browse.fetch.http_fetch import build_http_client, fetch_url_via_http
from web_browse.models import FetchResult, SearchResult, clamp_num_results
from web_browse.search.orchestrator import search_web
from web_browse.settings.config import Settings

logger = logging.getLogger(__name__)


@dataclass
class BrowseOptions:
    """Connection options shared by ``search``, ``fetch`` and ``url``."""

    no_daemon: bool = False
    browser_bin: str | None = None
    cdp: bool = False
    cdp_start: bool = False
    cdp_port: int | None = None
    cdp_profile: str | None = None
    http: bool = False

    def forwarded_args(self) -> list[str]:
        """Flags passed on to a daemon we spawn, so its session matches this invocation."""
        args: list[str] = []
        if self.cdp_profile:
            args += ["--cdp-profile", self.cdp_profile]
        if self.browser_bin:
            args += ["--browser-bin", self.browser_bin]
        return args


@contextmanager
def released_on_exit(registry: ProcessRegistry) -> Iterator[ProcessRegistry]:
    """Release *registry* on exit, turning SIGTERM into ``SystemExit`` so cleanup runs."""

    def _on_sigterm(signum, _frame):
        raise SystemExit(128 + signum)

    previous = None
    in_main_thread = threading.current_thread() is threading.main_thread()
    if in_main_thread:
        previous = signal.signal(signal.SIGTERM, _on_sigterm)
    try:
        yield registry
    finally:
        registry.release_all()
        if in_main_thread and previous is not None:
            signal.signal(signal.SIGTERM, previous)


# ---------------------------------------------------------------------------
# One-shot implementations
# ---------------------------------------------------------------------------


async def _one_shot_search(
    query: str, num: int, options: BrowseOptions, settings: Settings, registry: ProcessRegistry
) -> list[SearchResult]:
    cdp = await resolve_cdp_options(options.cdp, options.cdp_start, options.cdp_port or settings.browser.cdp_port)
    async with build_http_client(
        user_agent=settings.browser.user_agent,
        accept_language=settings.browser.accept_language,
        timeout_sec=settings.search.http_timeout_sec,
    ) as http_client:
        async with one_shot_session(
            registry,
            cdp,
            binary=options.browser_bin or settings.browser.binary or None,
            profile_dir=options.cdp_profile or settings.browser.profile_dir or None,
            launch_timeout_sec=settings.browser.launch_timeout_sec,
        ) as session:
            return await search_web(
                session.context,
                http_client,
                query,
                num,
                timeout_ms=settings.search.navigation_timeout_ms,
            )


async def _one_shot_fetch(
    urls: list[str], truncate: bool, options: BrowseOptions, settings: Settings, registry: ProcessRegistry
) -> list[FetchResult]:
    if options.http:
        async with build_http_client(
            user_agent=settings.browser.user_agent,
            accept_language=settings.browser.accept_language,
            timeout_sec=settings.fetch.http_timeout_sec,
        ) as http_client:
            return list(await asyncio.gather(*(fetch_url_via_http(http_client, url, truncate) for url in urls)))

    cdp = await resolve_cdp_options(options.cdp, options.cdp_start, options.cdp_port or settings.browser.cdp_port)
    async with one_shot_session(
        registry,
        cdp,
        binary=options.browser_bin or settings.browser.binary or None,
        profile_dir=options.cdp_profile or settings.browser.profile_dir or None,
        launch_timeout_sec=settings.browser.launch_timeout_sec,
    ) as session:
        results = await fetch_urls(session.context, urls, truncate, FetchOptions.from_settings(settings))
        await session.cleanup_pages()
        return results


# ---------------------------------------------------------------------------
# Public entry points
# ---------------------------------------------------------------------------


def run_search(query: str, num: int, options: BrowseOptions, settings: Settings) -> list[SearchResult]:
    """Search via the daemon (started on demand) or, with ``--no-daemon``, a one-shot browser."""
    num = clamp_num_results(num)
    if not options.no_daemon:
        client = DaemonClient.from_settings(settings)
        client.ensure_running(options.forwarded_args())
        data = client.send_command("search", {"query": query, "numResults": num})
        return [SearchResult.model_validate(item) for item in data or []]

    with released_on_exit(ProcessRegistry()) as registry:
        return asyncio.run(_one_shot_search(query, num, options, settings, registry))


def run_fetch(urls: list[str], truncate: bool, options: BrowseOptions, settings: Settings) -> list[FetchResult]:
    """Fetch *urls* in order via the daemon or a one-shot browser (or plain HTTP with ``--http``)."""
    if not options.no_daemon and not options.http:
        client = DaemonClient.from_settings(settings)
        client.ensure_running(options.forwarded_args())
        if len(urls) == 1:
            data = client.send_command("fetch", {"url": urls[0], "truncate": truncate})
            return [FetchResult.model_validate(data)]
        data = client.send_command("fetchMany", {"urls": urls, "truncate": truncate})
        return [FetchResult.model_validate(item) for item in data or []]

    with released_on_exit(ProcessRegistry()) as registry:
        return asyncio.run(_one_shot_fetch(urls, truncate, options, settings, registry))
