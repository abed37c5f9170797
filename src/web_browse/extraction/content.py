"""Turn raw page markup into a title plus a readable markdown body.

Article extraction is delegated to ``readability-lxml`` and HTML-to-markdown
conversion to ``markdownify``.  Fallbacks, in order: the document body's
markup, then the plain text of the document.  :func:`render` never raises.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from bs4 import BeautifulSoup
from markdownify import markdownify
from readability import Document

logger = logging.getLogger(__name__)

TRUNCATE_AT = 2000
MIN_PARAGRAPH_CUT = 1000
TRUNCATION_MARKER = "\n\n[... truncated, use --full for complete content ...]"

# readability-lxml's placeholder when a document has no <title>
_NO_TITLE = "[no-title]"


@dataclass
class PageContent:
    title: str = ""
    content: str = ""


def truncate_content(text: str) -> str:
    """Cut *text* at the last paragraph break at or before offset 2000.

    If there is no break past offset 1000, hard-cut at 2000.  Text that is
    already short enough is returned unchanged and without the marker.
    """
    if len(text) <= TRUNCATE_AT:
        return text
    # a break *starting* at offset 2000 still counts
    cut = text.rfind("\n\n", 0, TRUNCATE_AT + 2)
    if cut > MIN_PARAGRAPH_CUT:
        return text[:cut] + TRUNCATION_MARKER
    return text[:TRUNCATE_AT] + TRUNCATION_MARKER


def _to_markdown(html: str) -> str:
    return markdownify(html, heading_style="ATX")


def _extract_article(html: str) -> tuple[str, str]:
    """Return ``(title, article_html)`` from readability, or empty strings on failure."""
    try:
        doc = Document(html)
        title = doc.title() or ""
        if title == _NO_TITLE:
            title = ""
        return title, doc.summary(html_partial=True) or ""
    except Exception as exc:
        logger.debug("Readability extraction failed: %s", exc)
        return "", ""


def render(html: str, url: str = "", truncate: bool = True) -> PageContent:
    """Render raw *html* fetched from *url* into title + content.

    Args:
        html: Raw document markup.
        url: Source URL (diagnostics only).
        truncate: Apply the 2000-character truncation policy.
    """
    article_title, article_html = _extract_article(html or "")

    try:
        soup = BeautifulSoup(html or "", "lxml")
    except Exception as exc:
        logger.debug("Could not parse %s: %s", url or "document", exc)
        soup = None

    content = ""
    try:
        if article_html and BeautifulSoup(article_html, "lxml").get_text(strip=True):
            content = _to_markdown(article_html)
        elif soup is not None and soup.body is not None:
            content = _to_markdown(soup.body.decode_contents())
    except Exception as exc:
        logger.debug("Markdown conversion failed for %s: %s", url or "document", exc)
        content = ""
        if article_html:
            content = BeautifulSoup(article_html, "lxml").get_text("\n")
        if not content and soup is not None:
            content = soup.get_text("\n")

    content = content.strip()
    if truncate:
        content = truncate_content(content)

    doc_title = ""
    if soup is not None and soup.title is not None and soup.title.string:
        doc_title = soup.title.string.strip()

    return PageContent(title=article_title or doc_title or "", content=content)
