"""Configuration for web-browse."""

from web_browse.settings.config import Settings, get_settings

__all__ = ["Settings", "get_settings"]
