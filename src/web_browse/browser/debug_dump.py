"""Diagnostic artifact dumps for failed page loads.

Gated by ``WEB_BROWSE_DEBUG__DUMP_ENABLED``.  Never consulted for control
flow; every write swallows its own failure.
"""

from __future__ import annotations

import json
import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from playwright.async_api import Page

logger = logging.getLogger(__name__)

DUMP_PREFIX = "web-browse-dump"


def safe_slug(value: str) -> str:
    """Filesystem-safe slug, at most 60 characters."""
    slug = re.sub(r"[^a-z0-9]+", "-", str(value).lower()).strip("-")[:60]
    return slug or "page"


async def dump_debug_artifacts(
    page: Page,
    *,
    reason: str = "error",
    url: str | None = None,
    enabled: bool = False,
    base_dir: str | Path,
    prefix: str = DUMP_PREFIX,
) -> Path | None:
    """Write meta/title/HTML/text/screenshot for *page* into a fresh directory.

    Returns:
        The dump directory, or ``None`` when disabled or the directory could not be created.
    """
    if not enabled:
        return None

    now = datetime.now(timezone.utc)
    stamp = now.strftime("%Y-%m-%dT%H-%M-%S-%fZ")
    dump_dir = Path(base_dir) / f"{prefix}-{stamp}-{safe_slug(url or reason)}"
    try:
        dump_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        logger.debug("Could not create debug dump dir %s: %s", dump_dir, exc)
        return None

    meta = {"reason": reason, "url": url, "at": now.isoformat()}
    try:
        (dump_dir / "meta.json").write_text(json.dumps(meta, indent=2))
    except OSError:
        logger.debug("meta.json dump failed")

    try:
        (dump_dir / "title.txt").write_text(await page.title())
    except Exception:
        logger.debug("title dump failed")

    try:
        (dump_dir / "content.html").write_text(await page.content())
    except Exception:
        logger.debug("HTML dump failed")

    try:
        text = await page.evaluate("() => (document.body && document.body.innerText) || ''")
        (dump_dir / "text.txt").write_text(text or "")
    except Exception:
        logger.debug("text dump failed")

    try:
        await page.screenshot(path=str(dump_dir / "screenshot.png"), full_page=True)
    except Exception:
        logger.debug("screenshot dump failed")

    return dump_dir
