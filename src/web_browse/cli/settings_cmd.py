"""CLI commands for inspecting and validating web-browse settings."""

from __future__ import annotations

import json

import typer
from rich.console import Console

settings_app = typer.Typer(help="Inspect and validate web-browse configuration.")
console = Console()


@settings_app.command("show")
def show_settings() -> None:
    """Display the currently resolved settings."""
    from web_browse.settings import get_settings

    settings = get_settings()
    console.print_json(json.dumps(settings.model_dump(mode="json"), indent=2, default=str))


@settings_app.command("validate")
def validate_settings() -> None:
    """Validate settings and report any issues."""
    from web_browse.browser.binary import resolve_browser_binary
    from web_browse.exceptions import BinaryNotFoundError
    from web_browse.settings import get_settings

    try:
        settings = get_settings()
    except Exception as e:
        console.print(f"[red]✗[/red] Settings validation failed: {e}")
        raise typer.Exit(code=1)

    console.print("[green]✓[/green] Settings are valid.")
    console.print(f"  Daemon URL: {settings.daemon.url}")
    console.print(f"  Daemon CDP port: {settings.daemon.cdp_port}")
    try:
        binary = resolve_browser_binary(settings.browser.binary or None)
        console.print(f"  Browser: {binary}", markup=False)
    except BinaryNotFoundError as e:
        console.print(f"[yellow]![/yellow] {e}")
