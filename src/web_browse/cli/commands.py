"""``search``, ``fetch`` and ``url`` commands."""

from __future__ import annotations

from typing import NoReturn, Optional

import typer
from rich.console import Console

from web_browse.cache import SearchCache
from web_browse.cli.runner import BrowseOptions, run_fetch, run_search
from web_browse.exceptions import WebBrowseError
from web_browse.models import FetchResult, SearchResult

console = Console()
err_console = Console(stderr=True)

RULE = "=" * 70


# Shared connection options -------------------------------------------------


def _no_daemon_option():
    return typer.Option(False, "--no-daemon", help="Bypass the daemon and use a one-shot browser.")


def _browser_bin_option():
    return typer.Option(None, "--browser-bin", help="Browser binary to launch.", envvar="WEB_BROWSE_BROWSER_BIN")


def _cdp_option():
    return typer.Option(False, "--cdp", help="One-shot: attach to a browser already listening on --cdp-port.")


def _cdp_start_option():
    return typer.Option(False, "--cdp-start", help="One-shot: launch a fresh headless browser.")


def _cdp_port_option():
    return typer.Option(None, "--cdp-port", help="Remote-debugging port for one-shot mode.")


def _cdp_profile_option():
    return typer.Option(None, "--cdp-profile", help="Browser profile directory (default: fresh temporary profile).")


def _settings():
    from web_browse.settings import get_settings

    return get_settings()


def _out(text: str = "") -> None:
    console.print(text, markup=False, highlight=False, soft_wrap=True)


def _fail(message: str) -> NoReturn:
    err_console.print(f"Error: {message}", markup=False, highlight=False, soft_wrap=True)
    raise typer.Exit(code=1)


def print_search_results(results: list[SearchResult]) -> None:
    _out(RULE + "\n")
    for i, result in enumerate(results, start=1):
        _out(f"## {i}. {result.title}")
        _out(f"URL: {result.link}")
        _out(f"{result.snippet or '(no snippet)'}\n")
        _out(RULE + "\n")
    _out("Use `web-browse fetch 1,2,3` to read specific results")


def print_fetched_content(results: list[FetchResult]) -> None:
    _out(RULE + "\n")
    for result in results:
        _out(f"## {result.title or result.url}")
        _out(f"URL: {result.url}\n")
        if result.error:
            _out(f"Error: {result.error}")
        else:
            _out(result.content)
        _out("\n" + RULE + "\n")


def parse_indices(raw: str, available: int) -> list[int]:
    """Turn ``"1,3,5"`` into zero-based indices, dropping anything out of range."""
    indices = []
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            index = int(part) - 1
        except ValueError:
            continue
        if 0 <= index < available:
            indices.append(index)
    return indices


def search(
    query: str = typer.Argument(..., help="Search terms."),
    num_results: int = typer.Option(5, "--num", "-n", help="Number of results (1-20)."),
    stress: int = typer.Option(0, "--stress", help="Run the search N times and print a success summary."),
    no_daemon: bool = _no_daemon_option(),
    browser_bin: Optional[str] = _browser_bin_option(),
    cdp: bool = _cdp_option(),
    cdp_start: bool = _cdp_start_option(),
    cdp_port: Optional[int] = _cdp_port_option(),
    cdp_profile: Optional[str] = _cdp_profile_option(),
) -> None:
    """Search the web and cache the results for ``fetch``."""
    settings = _settings()
    options = BrowseOptions(
        no_daemon=no_daemon,
        browser_bin=browser_bin,
        cdp=cdp,
        cdp_start=cdp_start,
        cdp_port=cdp_port,
        cdp_profile=cdp_profile,
    )

    try:
        if stress > 0:
            err_console.print(f'Stress mode: {stress} searches for "{query}"', markup=False)
            successes = 0
            for i in range(stress):
                err_console.print(f"Run {i + 1}/{stress}", markup=False)
                if run_search(query, num_results, options, settings):
                    successes += 1
            _out(f"Stress summary: {successes}/{stress} successful searches")
            return

        err_console.print(f'Searching: "{query}"\n', markup=False)
        results = run_search(query, num_results, options, settings)
    except WebBrowseError as exc:
        _fail(str(exc))

    if not results:
        _out("No results found.")
        return

    SearchCache(settings.search.cache_file, settings.search.cache_ttl_sec).save(query, results)
    print_search_results(results)


def fetch(
    indices: str = typer.Argument(..., help="Comma-separated 1-based indices from the last search, e.g. 1,3."),
    full: bool = typer.Option(False, "--full", help="Do not truncate page content."),
    no_daemon: bool = _no_daemon_option(),
    browser_bin: Optional[str] = _browser_bin_option(),
    cdp: bool = _cdp_option(),
    cdp_start: bool = _cdp_start_option(),
    cdp_port: Optional[int] = _cdp_port_option(),
    cdp_profile: Optional[str] = _cdp_profile_option(),
) -> None:
    """Read pages from the cached search results by index."""
    settings = _settings()
    entry = SearchCache(settings.search.cache_file, settings.search.cache_ttl_sec).load()
    if entry is None:
        _fail("No cached search results. Run a search first.")

    selected = parse_indices(indices, len(entry.results))
    if not selected:
        count = len(entry.results)
        _fail(f"Invalid indices. Cache has {count} results (1-{count}).")

    urls = [entry.results[i].link for i in selected]
    options = BrowseOptions(
        no_daemon=no_daemon,
        browser_bin=browser_bin,
        cdp=cdp,
        cdp_start=cdp_start,
        cdp_port=cdp_port,
        cdp_profile=cdp_profile,
    )
    err_console.print(f"Fetching {len(urls)} page(s)...\n", markup=False)
    try:
        results = run_fetch(urls, not full, options, settings)
    except WebBrowseError as exc:
        _fail(str(exc))
    print_fetched_content(results)


def url(
    target: str = typer.Argument(..., metavar="URL", help="Page to read."),
    full: bool = typer.Option(False, "--full", help="Do not truncate page content."),
    http: bool = typer.Option(False, "--http", help="Plain HTTP fetch, no browser (implies --no-daemon)."),
    no_daemon: bool = _no_daemon_option(),
    browser_bin: Optional[str] = _browser_bin_option(),
    cdp: bool = _cdp_option(),
    cdp_start: bool = _cdp_start_option(),
    cdp_port: Optional[int] = _cdp_port_option(),
    cdp_profile: Optional[str] = _cdp_profile_option(),
) -> None:
    """Read a single URL."""
    settings = _settings()
    options = BrowseOptions(
        no_daemon=no_daemon or http,
        browser_bin=browser_bin,
        cdp=cdp,
        cdp_start=cdp_start,
        cdp_port=cdp_port,
        cdp_profile=cdp_profile,
        http=http,
    )
    err_console.print(f"Fetching: {target}\n", markup=False)
    try:
        results = run_fetch([target], not full, options, settings)
    except WebBrowseError as exc:
        _fail(str(exc))
    print_fetched_content(results)
