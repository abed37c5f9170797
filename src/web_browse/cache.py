"""Last-search result cache backing ``web-browse fetch <indices>``."""

from __future__ import annotations

import json
import logging
import time
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from web_browse.models import SearchResult

logger = logging.getLogger(__name__)

DEFAULT_TTL_SEC = 600


class CacheEntry(BaseModel):
    query: str
    timestamp: float
    results: list[SearchResult] = Field(default_factory=list)


class SearchCache:
    """One JSON file holding the most recent search.

    Args:
        path: Cache file location.
        ttl_sec: Entries older than this are treated as missing.
    """

    def __init__(self, path: str | Path, ttl_sec: int = DEFAULT_TTL_SEC) -> None:
        self.path = Path(path)
        self.ttl_sec = ttl_sec

    def save(self, query: str, results: list[SearchResult], *, now: float | None = None) -> None:
        entry = CacheEntry(query=query, timestamp=now if now is not None else time.time(), results=results)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(entry.model_dump_json())
        except OSError as exc:
            logger.warning("Could not write search cache %s: %s", self.path, exc)

    def load(self, *, now: float | None = None) -> CacheEntry | None:
        """Return the cached entry, or ``None`` if absent, unreadable, or expired."""
        try:
            entry = CacheEntry.model_validate(json.loads(self.path.read_text()))
        except FileNotFoundError:
            return None
        except (OSError, ValueError, ValidationError) as exc:
            logger.debug("Ignoring unreadable search cache %s: %s", self.path, exc)
            return None

        current = now if now is not None else time.time()
        if current - entry.timestamp > self.ttl_sec:
            return None
        return entry
