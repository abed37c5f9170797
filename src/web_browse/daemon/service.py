"""Daemon core: one browser session, one FIFO queue, idempotent shutdown.

Lifecycle::

    STARTING -> LISTENING -> SHUTTING_DOWN -> STOPPED

:meth:`DaemonService.shutdown` is the only way out of ``LISTENING``.  It is
invoked the same way whether the trigger is ``POST /shutdown``, an OS
signal (via the server's lifespan exit) or a fatal startup error, and it
releases the queue, the HTTP client, the browser connection, the browser
process tree and the PID file exactly once.
"""

from __future__ import annotations

import logging
import os
import time
from collections.abc import Awaitable, Callable
from enum import Enum
from pathlib import Path
from typing import Any

import httpx
from pydantic import ValidationError

from web_browse.browser.process import ProcessRegistry
from web_browse.browser.session import BrowserSession
from web_browse.daemon.client import read_pid_file
from web_browse.daemon.queue import CommandQueue
from web_browse.exceptions import InvalidCommandError
from web_browse.fetch.fetcher import FetchOptions, fetch_url, fetch_urls
from web_browse.fetch.http_fetch import build_http_client
from web_browse.models import (
    CommandRequest,
    DaemonHealth,
    FetchManyPayload,
    FetchPayload,
    SearchPayload,
)
from web_browse.search.orchestrator import search_web
from web_browse.settings.config import Settings

logger = logging.getLogger(__name__)

COMMANDS = ("fetch", "fetchMany", "search")

# Message used when a required payload field is missing or malformed.
_PAYLOAD_HINTS = {
    "fetch": "fetch requires payload.url",
    "fetchMany": "fetchMany requires payload.urls[]",
    "search": "search requires payload.query",
}


class DaemonState(str, Enum):
    STARTING = "starting"
    LISTENING = "listening"
    SHUTTING_DOWN = "shutting_down"
    STOPPED = "stopped"


def write_pid_file(path: str | Path, pid: int | None = None) -> None:
    try:
        Path(path).write_text(str(pid or os.getpid()))
    except OSError as exc:
        logger.warning("Could not write PID file %s: %s", path, exc)


def remove_pid_file(path: str | Path, pid: int | None = None) -> bool:
    """Delete the PID file only while it still names *pid* (default: this process).

    A daemon that never bound its port must not delete the file of the one
    that did.
    """
    if read_pid_file(path) != (pid or os.getpid()):
        return False
    try:
        Path(path).unlink(missing_ok=True)
        return True
    except OSError:
        logger.debug("Could not remove PID file %s", path)
        return False


class DaemonService:
    """Owns the daemon's browser session and serializes work against it.

    Args:
        settings: Resolved settings.
        registry: Ownership registry for the browser process.
        session: Pre-built session (tests); built from *settings* if omitted.
        http_client: Outbound client for the DuckDuckGo steps; built if omitted.
    """

    def __init__(
        self,
        settings: Settings,
        registry: ProcessRegistry | None = None,
        *,
        session: BrowserSession | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.settings = settings
        self.registry = registry or ProcessRegistry()
        self.session = session or BrowserSession(
            self.registry,
            cdp_port=settings.daemon.cdp_port,
            launch=True,
            profile_dir=settings.browser.profile_dir or None,
            binary=settings.browser.binary or None,
            launch_timeout_sec=settings.browser.launch_timeout_sec,
        )
        self.http_client = http_client
        self.queue = CommandQueue(after_each=self.session.cleanup_pages)
        self.fetch_options = FetchOptions.from_settings(settings)

        self.state = DaemonState.STARTING
        self.requests = 0
        self._started_at = time.monotonic()

    # -- lifecycle ------------------------------------------------------------

    async def start(self) -> None:
        """Launch the browser, open the keep-alive page and start the queue.

        The PID file is not written here; see :meth:`mark_bound`.

        Raises:
            BinaryNotFoundError / LaunchTimeoutError: startup is fatal; everything acquired so far is released.
        """
        logger.info("Starting web-browse daemon on %s", self.settings.daemon.url)
        try:
            await self.session.start(keep_alive=True)
            if self.http_client is None:
                self.http_client = build_http_client(
                    user_agent=self.settings.browser.user_agent,
                    accept_language=self.settings.browser.accept_language,
                    timeout_sec=self.settings.search.http_timeout_sec,
                )
            self.queue.start()
        except Exception:
            await self.shutdown()
            raise

        self._started_at = time.monotonic()
        self.state = DaemonState.LISTENING
        logger.info(
            "Daemon ready on %s (browser pid=%s, cdpPort=%s)",
            self.settings.daemon.url,
            self.session.process_id,
            self.session.debugging_port,
        )

    def mark_bound(self) -> None:
        """Record this process in the PID file once the HTTP listener is bound."""
        write_pid_file(self.settings.daemon.pid_file)
        logger.debug("PID file %s written (pid=%d)", self.settings.daemon.pid_file, os.getpid())

    async def shutdown(self) -> None:
        """Release every resource exactly once.  Safe to call repeatedly and from any state."""
        if self.state in (DaemonState.SHUTTING_DOWN, DaemonState.STOPPED):
            return
        self.state = DaemonState.SHUTTING_DOWN
        logger.info("Daemon shutting down")

        try:
            await self.queue.stop()
        except Exception:
            logger.debug("Queue stop failed", exc_info=True)

        if self.http_client is not None:
            try:
                await self.http_client.aclose()
            except Exception:
                logger.debug("HTTP client close failed")

        await self.session.close()
        self.registry.release_all()
        remove_pid_file(self.settings.daemon.pid_file)

        self.state = DaemonState.STOPPED
        logger.info("Daemon stopped")

    # -- commands -------------------------------------------------------------

    def prepare(self, request: CommandRequest) -> Callable[[], Awaitable[Any]]:
        """Validate *request* and bind it to a job for the queue.

        Raises:
            InvalidCommandError: Unknown command or missing/malformed payload field.
        """
        name = request.command
        if name not in COMMANDS:
            raise InvalidCommandError(f"unknown command: {name}")

        try:
            if name == "fetch":
                fetch = FetchPayload.model_validate(request.payload)
                return lambda: self._run_fetch(fetch)
            if name == "fetchMany":
                many = FetchManyPayload.model_validate(request.payload)
                return lambda: self._run_fetch_many(many)
            search = SearchPayload.model_validate(request.payload)
            return lambda: self._run_search(search)
        except ValidationError as exc:
            raise InvalidCommandError(_PAYLOAD_HINTS[name]) from exc

    async def execute(self, request: CommandRequest) -> Any:
        """Validate, enqueue and await one command; returns JSON-ready data."""
        if self.state is not DaemonState.LISTENING:
            raise InvalidCommandError(f"daemon is {self.state.value}")
        job = self.prepare(request)
        return await self.queue.submit(job)

    async def _run_fetch(self, payload: FetchPayload) -> dict[str, Any]:
        self.requests += 1
        result = await fetch_url(self.session.context, payload.url, payload.truncate, self.fetch_options)
        return result.model_dump()

    async def _run_fetch_many(self, payload: FetchManyPayload) -> list[dict[str, Any]]:
        self.requests += 1
        results = await fetch_urls(self.session.context, payload.urls, payload.truncate, self.fetch_options)
        return [r.model_dump() for r in results]

    async def _run_search(self, payload: SearchPayload) -> list[dict[str, Any]]:
        self.requests += 1
        num = payload.num_results if payload.num_results is not None else self.settings.search.default_num_results
        if self.http_client is None:
            raise RuntimeError("daemon HTTP client is not started")
        results = await search_web(
            self.session.context,
            self.http_client,
            payload.query,
            num,
            timeout_ms=self.settings.search.navigation_timeout_ms,
        )
        return [r.model_dump() for r in results]

    # -- health ---------------------------------------------------------------

    def health(self) -> DaemonHealth:
        """Read-only snapshot; never touches the queue."""
        try:
            pages = self.session.pages()
        except Exception:
            pages = []
        return DaemonHealth(
            pid=os.getpid(),
            session_process_id=self.session.process_id,
            debugging_port=self.session.debugging_port,
            requests=self.requests,
            page_count=len(pages),
            pages=pages,
            uptime_sec=round(time.monotonic() - self._started_at),
        )
