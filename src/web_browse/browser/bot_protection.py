"""Bot-protection (JS challenge / CAPTCHA interstitial) detection and waiting.

Flow for a freshly navigated page::

    UNKNOWN -> CHECKING -> CLEAR
                        -> DETECTED -> WAITING -> CLEARED
                                               -> STILL_BLOCKED (BotProtectionTimeoutError)

Detection is a case-insensitive substring match of a deliberately broad
marker list against the page title plus the first 6000 characters of
visible text.  Extra waiting on a false positive is cheap; scraping an
unsolved challenge page is not.

Reads tolerate the page's script context being torn down mid-navigation
(challenge reloads and redirects do this).  After repeated failures the
read reports "not blocked": a fail-open trade-off that can let a challenge
page through under persistent context errors.  Retrying is the caller's
decision.
"""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from web_browse.exceptions import BotProtectionTimeoutError

if TYPE_CHECKING:
    from playwright.async_api import Page

logger = logging.getLogger(__name__)

DEFAULT_MARKERS: tuple[str, ...] = (
    "making sure you're not a bot",
    "protected by anubis",
    "anubis uses a proof-of-work",
    "checking your browser",
    "just a moment",
    "cf-browser-verification",
    "enable javascript and cookies to continue",
    "attention required",
    "verify you are human",
    "unusual traffic",
)

TEXT_SCAN_LIMIT = 6000
DEFAULT_TIMEOUT_MS = 30_000

_READ_ATTEMPTS = 3
_READ_RETRY_PAUSE_MS = 250
_INITIAL_CHECKS = 3
_INITIAL_CHECK_PAUSE_MS = 200

# Errors raised while the page's execution context is being replaced.
_CONTEXT_TORN_DOWN = ("Execution context was destroyed", "Cannot find context")

# Same haystack construction as is_likely_bot_protection_text, evaluated in-page.
_HAYSTACK_JS = """
(() => {
    const title = (document.title || "").toLowerCase();
    const text = ((document.body && document.body.innerText) || "").slice(0, %d).toLowerCase();
    return title + "\\n" + text;
})
""" % TEXT_SCAN_LIMIT

_DETECT_JS = """
(markers) => {
    const haystack = %s();
    return markers.some((marker) => haystack.includes(marker));
}
""" % _HAYSTACK_JS.strip()

_CLEARED_JS = """
(markers) => {
    const haystack = %s();
    return !markers.some((marker) => haystack.includes(marker));
}
""" % _HAYSTACK_JS.strip()


class BotProtectionState(str, Enum):
    """States of the detect-and-wait cycle."""

    UNKNOWN = "unknown"
    CHECKING = "checking"
    CLEAR = "clear"
    DETECTED = "detected"
    WAITING = "waiting"
    CLEARED = "cleared"
    STILL_BLOCKED = "still_blocked"


@dataclass
class BotProtectionOutcome:
    """Result of :func:`wait_for_bot_protection_to_clear`."""

    state: BotProtectionState = BotProtectionState.UNKNOWN
    detected: bool = False
    cleared: bool = False
    waited_ms: int = 0


def is_likely_bot_protection_text(
    title: str | None,
    text: str | None,
    markers: Sequence[str] = DEFAULT_MARKERS,
) -> bool:
    """Return True if *title* / *text* contain any challenge marker (case-insensitive)."""
    haystack = f"{(title or '').lower()}\n{(text or '')[:TEXT_SCAN_LIMIT].lower()}"
    return any(marker.lower() in haystack for marker in markers)


async def is_likely_bot_protection_page(page: Page, markers: Sequence[str] = DEFAULT_MARKERS) -> bool:
    """Classify the live page, retrying reads that race a navigation.

    Returns False (fail-open) if the page cannot be read.
    """
    lowered = [m.lower() for m in markers]
    for _ in range(_READ_ATTEMPTS):
        try:
            return bool(await page.evaluate(_DETECT_JS, lowered))
        except Exception as exc:
            if any(sig in str(exc) for sig in _CONTEXT_TORN_DOWN):
                try:
                    await page.wait_for_timeout(_READ_RETRY_PAUSE_MS)
                except Exception:
                    logger.debug("wait_for_timeout failed during detection retry")
                continue
            logger.debug("Bot-protection read failed, treating as not blocked: %s", exc)
            return False
    return False


async def _settle(page: Page) -> None:
    """Wait for the document to be ready plus a short network-idle window."""
    for state, timeout in (("domcontentloaded", 10_000), ("networkidle", 5_000)):
        try:
            await page.wait_for_load_state(state, timeout=timeout)
        except Exception:
            logger.debug("wait_for_load_state(%s) did not complete", state)
    await page.wait_for_timeout(150)


async def wait_for_bot_protection_to_clear(
    page: Page,
    url: str,
    *,
    markers: Sequence[str] = DEFAULT_MARKERS,
    timeout_ms: int = DEFAULT_TIMEOUT_MS,
) -> BotProtectionOutcome:
    """Gate page readiness on any bot-protection challenge clearing.

    Args:
        page: Playwright page that has just navigated to *url*.
        url: URL being loaded (for log messages).
        markers: Marker phrases to look for.
        timeout_ms: How long to wait for the markers to disappear.

    Returns:
        The terminal :class:`BotProtectionOutcome` (``CLEAR`` or ``CLEARED``).

    Raises:
        BotProtectionTimeoutError: Markers are still present after the wait window.
    """
    outcome = BotProtectionOutcome()
    lowered = [m.lower() for m in markers]

    # Freshly rendered pages can briefly carry marker-like boilerplate.
    await page.wait_for_timeout(150 + random.randint(0, 150))

    outcome.state = BotProtectionState.CHECKING
    for _ in range(_INITIAL_CHECKS):
        outcome.detected = await is_likely_bot_protection_page(page, lowered)
        if outcome.detected:
            break
        await page.wait_for_timeout(_INITIAL_CHECK_PAUSE_MS)

    if not outcome.detected:
        outcome.state = BotProtectionState.CLEAR
        outcome.cleared = True
        return outcome

    outcome.state = BotProtectionState.DETECTED
    logger.info("Bot protection detected for %s. Waiting for it to clear...", url)
    started = time.monotonic()

    outcome.state = BotProtectionState.WAITING
    try:
        await page.wait_for_function(_CLEARED_JS, arg=lowered, timeout=timeout_ms)
    except Exception:
        logger.debug("Bot-protection markers still present after %dms on %s", timeout_ms, url)

    await _settle(page)
    outcome.waited_ms = int((time.monotonic() - started) * 1000)

    if await is_likely_bot_protection_page(page, lowered):
        outcome.state = BotProtectionState.STILL_BLOCKED
        try:
            title = await page.title()
        except Exception:
            title = ""
        raise BotProtectionTimeoutError(title)

    outcome.state = BotProtectionState.CLEARED
    outcome.cleared = True
    logger.info("Bot protection cleared for %s after %dms", url, outcome.waited_ms)
    return outcome

