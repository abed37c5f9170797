"""Web search with an engine fallback chain."""

from web_browse.search.orchestrator import search_web

__all__ = ["search_web"]
