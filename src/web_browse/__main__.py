"""Allow ``python -m web_browse`` (used to spawn the background daemon)."""

from web_browse.cli.app import app

if __name__ == "__main__":
    app()
