"""Client side of the daemon protocol: health, start, command, stop.

Usage::

    client = DaemonClient.from_settings(get_settings())
    client.ensure_running()
    results = client.send_command("search", {"query": "python", "numResults": 5})
"""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import sys
import time
from pathlib import Path
from typing import Any

import httpx

from web_browse.browser.process import ProcessTreeTerminator, get_process_terminator
from web_browse.exceptions import DaemonCommandError, DaemonStartTimeoutError, DaemonUnreachableError
from web_browse.settings.config import Settings

logger = logging.getLogger(__name__)

START_POLL_INTERVAL_SEC = 0.25
START_POLL_TIMEOUT_SEC = 0.8
STOP_POLL_INTERVAL_SEC = 0.2
STOP_POLL_TIMEOUT_SEC = 0.5


def read_pid_file(path: str | Path) -> int | None:
    """Return the PID recorded in *path*, or ``None`` if absent or unreadable."""
    try:
        return int(Path(path).read_text().strip())
    except (OSError, ValueError):
        return None


class DaemonClient:
    """Talks to the local daemon over HTTP.

    Args:
        daemon_url: Base URL, e.g. ``http://127.0.0.1:9377``.
        pid_file: Where the daemon records its PID.
        health_timeout: Timeout for the liveness probe.
        start_timeout: How long to wait for a spawned daemon to report healthy.
        stop_timeout: How long to wait for a signalled daemon to go away.
        command_timeout: Overall timeout for one command round-trip.
        transport: Optional httpx transport (tests).
    """

    def __init__(
        self,
        daemon_url: str,
        pid_file: str | Path,
        *,
        health_timeout: float = 0.6,
        start_timeout: float = 5.0,
        stop_timeout: float = 4.0,
        command_timeout: float = 120.0,
        transport: httpx.BaseTransport | None = None,
        terminator: ProcessTreeTerminator | None = None,
    ) -> None:
        self.daemon_url = daemon_url.rstrip("/")
        self.pid_file = Path(pid_file)
        self.health_timeout = health_timeout
        self.start_timeout = start_timeout
        self.stop_timeout = stop_timeout
        self.command_timeout = command_timeout
        self._transport = transport
        self._terminator = terminator or get_process_terminator()

    @classmethod
    def from_settings(cls, settings: Settings) -> DaemonClient:
        daemon = settings.daemon
        return cls(
            daemon.url,
            daemon.pid_file,
            health_timeout=daemon.health_timeout_sec,
            start_timeout=daemon.start_timeout_sec,
            stop_timeout=daemon.stop_timeout_sec,
            command_timeout=daemon.command_timeout_sec,
        )

    def _client(self, timeout: float) -> httpx.Client:
        return httpx.Client(base_url=self.daemon_url, timeout=timeout, transport=self._transport)

    # -- health ---------------------------------------------------------------

    def check_health(self, timeout: float | None = None) -> dict[str, Any] | None:
        """Return the health payload, or ``None`` if the daemon is unreachable or unhealthy."""
        try:
            with self._client(timeout or self.health_timeout) as client:
                response = client.get("/health")
            if response.status_code != 200:
                return None
            payload = response.json()
        except (httpx.HTTPError, ValueError):
            return None
        if isinstance(payload, dict) and payload.get("status") == "ok":
            return payload
        return None

    def read_pid(self) -> int | None:
        return read_pid_file(self.pid_file)

    # -- start ----------------------------------------------------------------

    def start_in_background(self, forwarded_args: list[str] | None = None) -> dict[str, Any]:
        """Spawn ``web-browse daemon run`` detached and wait for it to report healthy.

        Raises:
            DaemonStartTimeoutError: It never became healthy.
        """
        args = [sys.executable, "-m", "web_browse", "daemon", "run", *(forwarded_args or [])]
        logger.info("Starting daemon: %s", " ".join(args))
        subprocess.Popen(
            args,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            env=dict(os.environ),
            **self._terminator.popen_kwargs(),
        )

        attempts = max(1, int(self.start_timeout / START_POLL_INTERVAL_SEC))
        for _ in range(attempts):
            time.sleep(START_POLL_INTERVAL_SEC)
            health = self.check_health(START_POLL_TIMEOUT_SEC)
            if health:
                return health

        raise DaemonStartTimeoutError(self.daemon_url)

    def ensure_running(self, forwarded_args: list[str] | None = None) -> dict[str, Any]:
        """Return current health, starting the daemon first if needed.

        A stale PID file is ignored; the health probe is authoritative.
        """
        health = self.check_health()
        if health:
            return health
        return self.start_in_background(forwarded_args)

    # -- commands -------------------------------------------------------------

    def send_command(self, command: str, payload: dict[str, Any] | None = None) -> Any:
        """POST one command and return its ``data``.

        Raises:
            DaemonUnreachableError: Network failure or timeout.
            DaemonCommandError: The daemon answered ``success: false`` or an unreadable body.
        """
        try:
            with self._client(self.command_timeout) as client:
                response = client.post("/command", json={"command": command, "payload": payload or {}})
        except httpx.HTTPError as exc:
            raise DaemonUnreachableError(f"daemon unreachable at {self.daemon_url}: {exc}") from exc

        try:
            body = response.json()
        except ValueError as exc:
            raise DaemonCommandError("invalid daemon response") from exc
        if not isinstance(body, dict):
            raise DaemonCommandError("invalid daemon response")
        if not body.get("success"):
            raise DaemonCommandError(body.get("error") or "daemon command failed")
        return body.get("data")

    # -- stop -----------------------------------------------------------------

    def stop(self) -> dict[str, Any]:
        """Signal the daemon to exit and wait briefly for it to go away.

        Returns:
            ``{"status": "not running"}``, ``{"status": "stopped"}``, or
            ``{"status": "stopping", "pid": pid}`` if it is still up after the wait.
        """
        pid = self.read_pid()
        if not pid or not self._terminator.is_running(pid):
            return {"status": "not running"}

        try:
            os.kill(pid, signal.SIGTERM)
        except ProcessLookupError:
            # exited between the liveness check and the signal
            return {"status": "stopped"}
        except OSError as exc:
            raise DaemonCommandError(f"failed to stop daemon pid={pid}: {exc}") from exc

        attempts = max(1, int(self.stop_timeout / STOP_POLL_INTERVAL_SEC))
        for _ in range(attempts):
            time.sleep(STOP_POLL_INTERVAL_SEC)
            if not self.check_health(STOP_POLL_TIMEOUT_SEC):
                return {"status": "stopped"}

        return {"status": "stopping", "pid": pid}
