"""CLI commands for controlling the background daemon."""

from __future__ import annotations

import json
from typing import Any, Optional

import typer
from rich.console import Console

from web_browse.exceptions import WebBrowseError

daemon_app = typer.Typer(help="Start, stop and inspect the persistent browser daemon.")
console = Console()
err_console = Console(stderr=True)

STATUS_HEALTH_TIMEOUT_SEC = 1.5


def _client():
    from web_browse.daemon.client import DaemonClient
    from web_browse.settings import get_settings

    return DaemonClient.from_settings(get_settings())


def _print(payload: dict[str, Any]) -> None:
    console.print_json(json.dumps(payload, default=str))


@daemon_app.command("start")
def start_daemon() -> None:
    """Start the daemon if it is not already running."""
    try:
        health = _client().ensure_running()
    except WebBrowseError as exc:
        err_console.print(f"Error: {exc}", markup=False)
        raise typer.Exit(code=1)
    _print({"status": "running", "health": health})


@daemon_app.command("stop")
def stop_daemon() -> None:
    """Stop a running daemon."""
    try:
        result = _client().stop()
    except WebBrowseError as exc:
        err_console.print(f"Error: {exc}", markup=False)
        raise typer.Exit(code=1)
    _print(result)


@daemon_app.command("status")
def daemon_status() -> None:
    """Report whether the daemon is up, with its health snapshot."""
    health = _client().check_health(STATUS_HEALTH_TIMEOUT_SEC)
    _print({"status": "running" if health else "stopped", "health": health})


@daemon_app.command("restart")
def restart_daemon() -> None:
    """Stop (best effort) and start again."""
    client = _client()
    try:
        client.stop()
    except WebBrowseError:
        pass
    try:
        health = client.ensure_running()
    except WebBrowseError as exc:
        err_console.print(f"Error: {exc}", markup=False)
        raise typer.Exit(code=1)
    _print({"status": "running", "health": health})


@daemon_app.command("run", hidden=True)
def run(
    browser_bin: Optional[str] = typer.Option(None, "--browser-bin", help="Browser binary to launch."),
    cdp_profile: Optional[str] = typer.Option(None, "--cdp-profile", help="Browser profile directory."),
    cdp_port: Optional[int] = typer.Option(None, "--cdp-port", help="Preferred remote-debugging port."),
    port: Optional[int] = typer.Option(None, "--port", help="Daemon listen port."),
) -> None:
    """Run the daemon in the foreground (spawned by ``daemon start``)."""
    from web_browse.daemon.server import run_daemon
    from web_browse.settings import get_settings

    settings = get_settings().model_copy(deep=True)
    if browser_bin:
        settings.browser.binary = browser_bin
    if cdp_profile:
        settings.browser.profile_dir = cdp_profile
    if cdp_port:
        settings.daemon.cdp_port = cdp_port
    if port:
        settings.daemon.port = port

    if not run_daemon(settings):
        raise typer.Exit(code=1)
