"""web-browse: headless-browser web search and page reading for automated agents."""

from __future__ import annotations

try:
    from importlib.metadata import version

    __version__ = version("web-browse")
except Exception:
    __version__ = "0.0.0"
