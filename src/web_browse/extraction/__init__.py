"""Readable-content extraction from raw page markup."""

from web_browse.extraction.content import TRUNCATION_MARKER, PageContent, render, truncate_content

__all__ = ["TRUNCATION_MARKER", "PageContent", "render", "truncate_content"]
