"""Browser process launch and remote-debugging (CDP) endpoint negotiation.

Spawns a headless Chromium-family browser with a dedicated profile and
debugging port, waits until ``/json/version`` advertises a live WebSocket
URL, and hands back a :class:`LaunchedBrowser` that knows how to tear the
whole process tree down again.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import subprocess
import sys
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import httpx

from web_browse.browser.binary import resolve_browser_binary
from web_browse.browser.ports import choose_available_port
from web_browse.browser.process import ProcessRegistry
from web_browse.exceptions import LaunchTimeoutError

logger = logging.getLogger(__name__)

CDP_HOST = "127.0.0.1"
CDP_POLL_INTERVAL_SEC = 0.3
DEFAULT_LAUNCH_TIMEOUT_SEC = 15.0

# Ports probed (in order) for an already-running browser before launching one.
AUTO_DETECT_PORTS: tuple[int, ...] = (9225, 9222)
AUTO_START_PORT = 9225

_CHROME_UA_VERSION = "131.0.0.0"


@dataclass
class LaunchedBrowser:
    """A browser process we spawned and own."""

    process: subprocess.Popen
    port: int
    binary: str
    profile_dir: Path
    owns_profile_dir: bool = False

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def cdp_url(self) -> str:
        return f"http://{CDP_HOST}:{self.port}"

    def terminate(self, registry: ProcessRegistry) -> None:
        """Kill the process group and drop any temporary profile.  Never raises."""
        registry.release(self.process)
        if self.owns_profile_dir:
            shutil.rmtree(self.profile_dir, ignore_errors=True)


@dataclass
class CdpOptions:
    """Resolved one-shot connection mode."""

    use_cdp: bool
    cdp_start: bool
    cdp_port: int


def headless_args(system: str) -> list[str]:
    """Platform-conditional headless flags.

    ``--headless=new`` puts "HeadlessChrome" in the user agent, which search
    engines flag immediately, so macOS and Windows get a spoofed desktop UA.
    Linux uses the ozone headless platform instead, which runs a full browser
    with a normal UA and no display server.
    """
    if system == "darwin" or system.startswith("win"):
        ua_platform = (
            "(Macintosh; Intel Mac OS X 10_15_7)" if system == "darwin" else "(Windows NT 10.0; Win64; x64)"
        )
        user_agent = (
            f"Mozilla/5.0 {ua_platform} AppleWebKit/537.36 (KHTML, like Gecko) "
            f"Chrome/{_CHROME_UA_VERSION} Safari/537.36"
        )
        return ["--headless=new", "--window-size=1280,720", f"--user-agent={user_agent}"]
    return ["--ozone-platform=headless", "--ozone-override-screen-size=1280,720"]


def build_launch_args(port: int, profile_dir: Path | str, system: str | None = None) -> list[str]:
    """Return the full argument list (without the binary) for a CDP-enabled headless launch."""
    system = system or sys.platform
    return [
        *headless_args(system),
        "--no-sandbox",
        "--disable-setuid-sandbox",
        "--no-first-run",
        "--no-default-browser-check",
        # Background throttling slows JS challenges (e.g. proof-of-work) to a crawl.
        "--disable-background-timer-throttling",
        "--disable-backgrounding-occluded-windows",
        "--disable-renderer-backgrounding",
        f"--remote-debugging-port={port}",
        f"--remote-debugging-address={CDP_HOST}",
        f"--user-data-dir={profile_dir}",
        "about:blank",
    ]


def _launch_env(system: str) -> dict[str, str]:
    env = dict(os.environ)
    if system not in ("darwin",) and not system.startswith("win"):
        # Keep the browser off the user's Wayland/X11 session.
        env.pop("WAYLAND_DISPLAY", None)
        env.pop("DISPLAY", None)
    return env


def is_usable_version_payload(payload: Any) -> bool:
    """A ``/json/version`` payload is usable once it advertises a ``ws`` debugger URL."""
    if not isinstance(payload, dict):
        return False
    ws_url = payload.get("webSocketDebuggerUrl")
    return isinstance(ws_url, str) and ws_url.startswith("ws")


def is_likely_usable_cdp(payload: Any) -> bool:
    """Reject endpoints that belong to Electron apps (editors, chat clients) rather than a browser."""
    if not isinstance(payload, dict):
        return False
    user_agent = payload.get("User-Agent")
    if isinstance(user_agent, str) and "electron/" in user_agent.lower():
        return False
    return True


async def wait_for_cdp_version(
    port: int,
    timeout_sec: float = 10.0,
    *,
    interval_sec: float = CDP_POLL_INTERVAL_SEC,
    process: subprocess.Popen | None = None,
) -> dict[str, Any] | None:
    """Poll ``/json/version`` on *port* until it is usable or *timeout_sec* elapses.

    Returns:
        The version payload, or ``None`` on timeout (or if *process* exits first).
    """
    url = f"http://{CDP_HOST}:{port}/json/version"
    deadline = time.monotonic() + timeout_sec

    async with httpx.AsyncClient(timeout=max(interval_sec, 1.0)) as client:
        while time.monotonic() < deadline:
            try:
                response = await client.get(url)
                if response.status_code == 200:
                    payload = response.json()
                    if is_usable_version_payload(payload):
                        return payload
            except (httpx.HTTPError, ValueError):
                pass

            if process is not None and process.poll() is not None:
                logger.warning("Browser process exited early (code=%s)", process.returncode)
                return None
            await asyncio.sleep(interval_sec)

    return None


async def launch_browser(
    preferred_port: int,
    registry: ProcessRegistry,
    *,
    profile_dir: str | Path | None = None,
    binary_override: str | None = None,
    timeout_sec: float = DEFAULT_LAUNCH_TIMEOUT_SEC,
    system: str | None = None,
) -> LaunchedBrowser:
    """Spawn a headless browser with remote debugging enabled.

    Args:
        preferred_port: Debugging port to try first (see :func:`choose_available_port`).
        registry: Ownership registry the spawned process is recorded in.
        profile_dir: Profile directory to use.  ``None`` creates a fresh
            temporary profile that is removed again on teardown.
        binary_override: Explicit browser binary.
        timeout_sec: How long to wait for the debugging endpoint.
        system: ``sys.platform``-style override (tests).

    Raises:
        BinaryNotFoundError: No browser binary could be resolved.
        LaunchTimeoutError: The endpoint never became ready; the process was killed.
    """
    system = system or sys.platform
    binary = resolve_browser_binary(binary_override, system=system)
    port = choose_available_port(preferred_port)

    owns_profile = profile_dir is None
    profile = Path(tempfile.mkdtemp(prefix="web-browse-profile-")) if owns_profile else Path(profile_dir)
    profile.mkdir(parents=True, exist_ok=True)

    args = [binary, *build_launch_args(port, profile, system)]
    logger.info("Launching browser %s on CDP port %d (profile=%s)", binary, port, profile)

    try:
        process = subprocess.Popen(
            args,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            env=_launch_env(system),
            **registry.terminator.popen_kwargs(),
        )
    except OSError:
        if owns_profile:
            shutil.rmtree(profile, ignore_errors=True)
        raise
    registry.add(process)
    launched = LaunchedBrowser(
        process=process, port=port, binary=binary, profile_dir=profile, owns_profile_dir=owns_profile
    )

    payload = await wait_for_cdp_version(port, timeout_sec, process=process)
    if payload is None:
        launched.terminate(registry)
        raise LaunchTimeoutError(port, binary)

    logger.info("Browser ready (pid=%d, port=%d, %s)", process.pid, port, payload.get("Browser", "?"))
    return launched


async def resolve_cdp_options(use_cdp: bool, cdp_start: bool, cdp_port: int) -> CdpOptions:
    """Decide how a one-shot run gets its browser.

    With neither flag set, attach to an already-running browser on 9225 or
    9222 if one answers (and is not an Electron app), otherwise launch a new
    one on 9225.
    """
    if use_cdp or cdp_start:
        return CdpOptions(use_cdp=True, cdp_start=cdp_start, cdp_port=cdp_port)

    for port in AUTO_DETECT_PORTS:
        payload = await wait_for_cdp_version(port, 1.0)
        if is_likely_usable_cdp(payload):
            logger.info("Attaching to existing browser on CDP port %d", port)
            return CdpOptions(use_cdp=True, cdp_start=False, cdp_port=port)

    return CdpOptions(use_cdp=True, cdp_start=True, cdp_port=AUTO_START_PORT)
