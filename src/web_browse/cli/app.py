"""Unified CLI entry point for web-browse.

Config precedence: settings.toml -> settings.local.toml -> env vars (WEB_BROWSE_* with __) -> CLI flags.
"""

from __future__ import annotations

import typer

from web_browse import __version__
from web_browse.cli.commands import fetch, search, url
from web_browse.cli.daemon_cmd import daemon_app
from web_browse.cli.settings_cmd import settings_app
from web_browse.logging_config import configure_logging

APP_HELP = (
    "web-browse: search the web and read pages through a headless browser. "
    "Commands use a persistent local daemon by default; pass --no-daemon for a one-shot browser. "
    "Config precedence: settings.toml -> settings.local.toml -> env vars (WEB_BROWSE_* with __) -> CLI flags."
)

app = typer.Typer(add_completion=True, help=APP_HELP)

app.command("search")(search)
app.command("fetch")(fetch)
app.command("url")(url)
app.add_typer(daemon_app, name="daemon")
app.add_typer(settings_app, name="settings")


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: bool = typer.Option(False, "--version", help="Show version and exit."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log progress at INFO level."),
) -> None:
    """Show help when no subcommand is provided."""
    if version:
        typer.echo(f"web-browse {__version__}")
        raise typer.Exit()
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()
    configure_logging("INFO" if verbose else None)


if __name__ == "__main__":
    app()
