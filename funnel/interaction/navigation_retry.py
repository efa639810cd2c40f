"""
Navigation with bounded retries, used by Init to load a site's base URL.

- at most MAX_NAV_ATTEMPTS goto calls, backoff 1s / 2s / 4s plus jitter
- retried: timeouts, net::ERR_* failures, HTTP 403 / 429 / 503
- any other HTTP error status fails at once
- a challenge / block page after load is reported, never bypassed
"""

from __future__ import annotations

import asyncio
import random
import time
from dataclasses import dataclass
from typing import Optional

from playwright.async_api import Page, Response
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from shared.logging import get_logger

logger = get_logger(__name__)

MAX_NAV_ATTEMPTS = 3
BACKOFF_SECONDS = (1, 2, 4)
JITTER_MS = 500
NAV_TIMEOUT_MS = 30_000
# Budget for all attempts of one navigation, backoff included
HARD_PAGE_TIMEOUT_MS = 90_000

# Lower-cased substrings of title/body that mark a challenge page
BOT_BLOCK_INDICATORS = (
    "captcha",
    "verify you are human",
    "access denied",
    "ddos protection",
)

RETRYABLE_STATUSES = frozenset({403, 429, 503})


@dataclass
class NavigateResult:
    success: bool
    response: Optional[Response]
    error_summary: Optional[str]
    attempts: int = 0
    bot_block_detected: bool = False


def _backoff_seconds(attempt: int) -> float:
    base = BACKOFF_SECONDS[min(attempt, len(BACKOFF_SECONDS)) - 1]
    return base + random.uniform(0, JITTER_MS / 1000.0)


def _classify_failure(exc: BaseException) -> tuple[bool, str]:
    """(retryable, reason) for an exception raised by page.goto."""
    if isinstance(exc, PlaywrightTimeoutError):
        return True, "navigation_timeout"
    text = str(getattr(exc, "message", None) or exc).lower()
    if "net::err_" in text:
        return True, "net_err"
    return False, "non_retryable"


def _is_retryable_status(status: Optional[int]) -> bool:
    return status in RETRYABLE_STATUSES


def _status_summary(status: int) -> str:
    if status == 429:
        return "Rate limited (429)"
    if status in RETRYABLE_STATUSES:
        return "Blocked (403/503)"
    return f"HTTP {status}"


async def is_bot_block_page(page: Page) -> bool:
    """True when title or body text carries a challenge indicator; unreadable pages are not blocked."""
    try:
        text = f"{await page.title()} {await page.inner_text('body')}".lower()
    except Exception:
        return False
    return any(indicator in text for indicator in BOT_BLOCK_INDICATORS)


async def navigate_with_retry(
    page: Page,
    url: str,
    *,
    wait_until: str = "domcontentloaded",
    nav_timeout_ms: int = NAV_TIMEOUT_MS,
    hard_page_timeout_ms: int = HARD_PAGE_TIMEOUT_MS,
) -> NavigateResult:
    """Load url, retrying transient failures; check the loaded document for a block page."""
    started = time.monotonic()
    response: Optional[Response] = None
    attempt = 0

    def _failed(summary: str, reason: str, **fields) -> NavigateResult:
        logger.warning("navigation.failed", url=url, attempt=attempt, failure_classification=reason, **fields)
        return NavigateResult(success=False, response=response, error_summary=summary, attempts=attempt)

    for attempt in range(1, MAX_NAV_ATTEMPTS + 1):
        elapsed_ms = (time.monotonic() - started) * 1000
        if elapsed_ms >= hard_page_timeout_ms:
            response = None
            return _failed("Navigation timeout", "hard_timeout", elapsed_ms=round(elapsed_ms))

        logger.info("navigation.attempt", attempt=attempt, url=url)
        try:
            response = await page.goto(url, wait_until=wait_until, timeout=nav_timeout_ms)
        except Exception as e:
            retryable, reason = _classify_failure(e)
            if not retryable or attempt == MAX_NAV_ATTEMPTS:
                response = None
                summary = "Navigation timeout" if reason == "navigation_timeout" else "Navigation error"
                return _failed(summary, reason, error=str(e))
            backoff = _backoff_seconds(attempt)
            logger.info("navigation.retry", reason=reason, attempt=attempt, backoff_s=round(backoff, 2), error=str(e))
            await asyncio.sleep(backoff)
            continue

        # Same-document and about: navigations resolve without a response.
        if response is None:
            break
        status = response.status
        if _is_retryable_status(status) and attempt < MAX_NAV_ATTEMPTS:
            backoff = _backoff_seconds(attempt)
            logger.info("navigation.retry", reason=f"status_{status}", attempt=attempt, backoff_s=round(backoff, 2))
            await asyncio.sleep(backoff)
            continue
        if status >= 400:
            return _failed(_status_summary(status), f"status_{status}", status=status)
        break

    if await is_bot_block_page(page):
        logger.warning("navigation.failed", url=url, attempt=attempt, failure_classification="bot_block")
        return NavigateResult(
            success=False,
            response=response,
            error_summary="Bot-block",
            attempts=attempt,
            bot_block_detected=True,
        )

    logger.info("navigation.success", attempt=attempt, url=url)
    return NavigateResult(success=True, response=response, error_summary=None, attempts=attempt)
