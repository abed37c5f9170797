"""Wire and result models shared by the CLI, the daemon, and its client.

Field names on the wire follow the daemon protocol (camelCase where the
protocol uses it); Python attributes stay snake_case via aliases.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

MIN_RESULTS = 1
MAX_RESULTS = 20


def clamp_num_results(num: int) -> int:
    """Clamp a requested result count to ``[1, 20]``."""
    return max(MIN_RESULTS, min(int(num), MAX_RESULTS))


class SearchResult(BaseModel):
    """A single search hit in engine relevance order."""

    title: str
    link: str
    snippet: str = ""


class FetchResult(BaseModel):
    """Outcome of reading one URL.

    Exactly one of (``title`` + ``content``) or ``error`` is meaningful.
    ``content`` is an empty string on error, never ``None``.
    """

    url: str
    title: str = ""
    content: str = ""
    error: str | None = None

    @classmethod
    def failed(cls, url: str, error: str) -> FetchResult:
        return cls(url=url, title="", content="", error=error)


class PageInfo(BaseModel):
    url: str
    closed: bool = False


class DaemonHealth(BaseModel):
    """Snapshot returned by ``GET /health``."""

    model_config = ConfigDict(populate_by_name=True)

    status: str = "ok"
    pid: int
    session_process_id: int | None = Field(None, alias="sessionProcessId")
    debugging_port: int | None = Field(None, alias="debuggingPort")
    requests: int = 0
    page_count: int = Field(0, alias="pageCount")
    pages: list[PageInfo] = Field(default_factory=list)
    uptime_sec: int = Field(0, alias="uptimeSec")

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


# ---------------------------------------------------------------------------
# Command protocol
# ---------------------------------------------------------------------------


class CommandRequest(BaseModel):
    """Body of ``POST /command``."""

    command: str
    payload: dict[str, Any] = Field(default_factory=dict)


class FetchPayload(BaseModel):
    url: str = Field(..., min_length=1)
    truncate: bool = False


class FetchManyPayload(BaseModel):
    urls: list[str]
    truncate: bool = False


class SearchPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    query: str = Field(..., min_length=1)
    num_results: int | None = Field(None, alias="numResults")


class CommandResponse(BaseModel):
    """Envelope for ``POST /command`` answers."""

    success: bool
    data: Any = None
    error: str | None = None

    def to_wire(self) -> dict[str, Any]:
        if self.success:
            return {"success": True, "data": self.data}
        return {"success": False, "error": self.error}
