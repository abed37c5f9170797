"""web-browse exception hierarchy."""

from __future__ import annotations


class WebBrowseError(Exception):
    """Base exception for all web-browse errors."""


class BinaryNotFoundError(WebBrowseError):
    """Raised when no usable browser binary can be resolved.

    Attributes:
        platform_name: Human-readable platform the OS defaults were chosen for.
        tried: Every override, path, or PATH name that was checked, in order.
    """

    def __init__(self, platform_name: str, tried: list[str]) -> None:
        self.platform_name = platform_name
        self.tried = tried
        super().__init__(
            f"No supported browser binary found on {platform_name}. "
            "Set WEB_BROWSE_BROWSER_BIN or BRAVE_BIN, or pass --browser-bin <path>. "
            f"Tried: {', '.join(tried)}"
        )


class LaunchTimeoutError(WebBrowseError):
    """Raised when a spawned browser never exposes its debugging endpoint."""

    def __init__(self, port: int, binary: str) -> None:
        self.port = port
        self.binary = binary
        super().__init__(f"Failed to start browser with CDP on port {port} (bin={binary})")


class BotProtectionTimeoutError(WebBrowseError):
    """Raised when a bot-protection challenge is still present after the wait window."""

    def __init__(self, title: str) -> None:
        self.title = title
        super().__init__(f'Bot protection challenge did not clear (title="{title}")')


class SearchBlockedError(WebBrowseError):
    """Raised when a search engine refuses automated access (captcha, 202, "unusual traffic")."""

    def __init__(self, engine: str, detail: str = "") -> None:
        self.engine = engine
        self.detail = detail
        suffix = f" ({detail})" if detail else ""
        super().__init__(f"{engine} blocked automated access{suffix}")


class SearchEngineError(WebBrowseError):
    """Raised when a search engine answers with a non-success HTTP status."""

    def __init__(self, engine: str, status_code: int, reason: str = "") -> None:
        self.engine = engine
        self.status_code = status_code
        super().__init__(f"{engine} search failed: {status_code} {reason}".rstrip())


class NavigationTimeoutError(WebBrowseError):
    """Raised when a page navigation exceeds its timeout."""

    def __init__(self, url: str, timeout_ms: int) -> None:
        self.url = url
        self.timeout_ms = timeout_ms
        super().__init__(f"Timeout after {timeout_ms // 1000}s")


class DaemonUnreachableError(WebBrowseError):
    """Raised when the daemon's HTTP endpoint cannot be reached."""


class DaemonStartTimeoutError(WebBrowseError):
    """Raised when a freshly spawned daemon never reports healthy."""

    def __init__(self, daemon_url: str) -> None:
        self.daemon_url = daemon_url
        super().__init__(f"daemon failed to start on {daemon_url}")


class DaemonCommandError(WebBrowseError):
    """Raised when the daemon answers a command with ``success: false``."""


class InvalidCommandError(WebBrowseError):
    """Raised for an unknown command name or a missing required payload field."""
