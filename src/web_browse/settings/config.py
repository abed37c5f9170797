"""Configuration loader for web-browse using Pydantic settings.

Config precedence (highest wins):
  1. CLI flags (where applicable)
  2. Environment variables (WEB_BROWSE_* with __ for nesting)
  3. settings.local.toml
  4. settings.toml

Both TOML files are looked up in ``WEB_BROWSE_CONFIG_DIR``
(default ``~/.config/web-browse``).
"""

from __future__ import annotations

import os
import tempfile
import tomllib
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# ---------------------------------------------------------------------------
# Path helpers
# ---------------------------------------------------------------------------

CONFIG_DIR_ENV = "WEB_BROWSE_CONFIG_DIR"
TEMP_DIR = Path(tempfile.gettempdir())

# Generic desktop Chrome UA; works across platforms for plain HTTP calls.
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


def _config_dir() -> Path:
    return Path(os.getenv(CONFIG_DIR_ENV) or Path.home() / ".config" / "web-browse")


def _load_toml(path: Path) -> dict[str, Any]:
    if path.is_file():
        with open(path, "rb") as f:
            return tomllib.load(f)
    return {}


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class BrowserSettings(BaseSettings):
    """Browser process and HTTP identity settings."""

    model_config = SettingsConfigDict(env_prefix="WEB_BROWSE_BROWSER__")

    binary: str = ""
    user_agent: str = DEFAULT_USER_AGENT
    accept_language: str = "en-US,en;q=0.9"
    cdp_port: int = 9222
    profile_dir: str = ""  # empty -> fresh temporary profile per launch
    launch_timeout_sec: float = 15.0


class DaemonSettings(BaseSettings):
    """Persistent daemon settings."""

    model_config = SettingsConfigDict(env_prefix="WEB_BROWSE_DAEMON__")

    host: str = "127.0.0.1"
    port: int = 9377
    cdp_port: int = 9223
    pid_file: str = str(TEMP_DIR / "web-browse-daemon.pid")
    log_file: str = ""
    health_timeout_sec: float = 0.6
    start_timeout_sec: float = 5.0
    stop_timeout_sec: float = 4.0
    command_timeout_sec: float = 120.0

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}"


class FetchSettings(BaseSettings):
    """Page fetch timeouts."""

    model_config = SettingsConfigDict(env_prefix="WEB_BROWSE_FETCH__")

    navigation_timeout_ms: int = 45_000
    bot_protection_timeout_ms: int = 30_000
    http_timeout_sec: float = 15.0


class SearchSettings(BaseSettings):
    """Search engine and result cache settings."""

    model_config = SettingsConfigDict(env_prefix="WEB_BROWSE_SEARCH__")

    navigation_timeout_ms: int = 20_000
    default_num_results: int = 5
    http_timeout_sec: float = 15.0
    cache_file: str = str(TEMP_DIR / "web-browse-cache.json")
    cache_ttl_sec: int = 600


class DebugSettings(BaseSettings):
    """Diagnostic artifact dumping (screenshots / HTML snapshots)."""

    model_config = SettingsConfigDict(env_prefix="WEB_BROWSE_DEBUG__")

    dump_enabled: bool = False
    dump_dir: str = str(TEMP_DIR)


# ---------------------------------------------------------------------------
# Root settings
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    """Root web-browse settings with nested sections."""

    model_config = SettingsConfigDict(
        env_prefix="WEB_BROWSE_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    log_level: str = "WARNING"

    browser: BrowserSettings = Field(default_factory=BrowserSettings)
    daemon: DaemonSettings = Field(default_factory=DaemonSettings)
    fetch: FetchSettings = Field(default_factory=FetchSettings)
    search: SearchSettings = Field(default_factory=SearchSettings)
    debug: DebugSettings = Field(default_factory=DebugSettings)

    @model_validator(mode="before")
    @classmethod
    def _merge_toml_files(cls, values: dict[str, Any]) -> dict[str, Any]:
        """Layer TOML config files before env var overrides."""
        config_dir = _config_dir()
        defaults = _load_toml(config_dir / "settings.toml")
        local_overrides = _load_toml(config_dir / "settings.local.toml")

        # Merge: settings.toml < settings.local.toml < explicit values
        merged: dict[str, Any] = {}
        for layer in (defaults, local_overrides, values):
            for key, val in layer.items():
                if isinstance(val, dict) and isinstance(merged.get(key), dict):
                    merged[key] = {**merged[key], **val}
                else:
                    merged[key] = val
        return merged


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the singleton settings instance (cached)."""
    return Settings()
