"""
Unit tests for navigation retry: backoff, failure classification, block-page
detection and max attempts.

No network access required (offline tests with mocked Playwright).
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from funnel.interaction.navigation_retry import (
    BACKOFF_SECONDS,
    JITTER_MS,
    MAX_NAV_ATTEMPTS,
    _backoff_seconds,
    _classify_failure,
    _is_retryable_status,
    is_bot_block_page,
    navigate_with_retry,
)

MODULE = "funnel.interaction.navigation_retry"


def _response(status: int) -> MagicMock:
    response = MagicMock()
    response.status = status
    response.__bool__ = lambda self: True
    return response


# --- Backoff and classification ---


def test_backoff_within_jitter_bounds():
    """Backoff is the base delay plus bounded jitter."""
    for attempt, base in enumerate(BACKOFF_SECONDS, start=1):
        value = _backoff_seconds(attempt)
        assert base <= value <= base + JITTER_MS / 1000.0


def test_classify_failure():
    """Timeouts and net::ERR are retryable; other errors are not."""
    assert _classify_failure(PlaywrightTimeoutError("timeout")) == (True, "navigation_timeout")
    assert _classify_failure(Exception("net::ERR_CONNECTION_RESET at https://x")) == (True, "net_err")
    assert _classify_failure(Exception("Protocol error")) == (False, "non_retryable")


def test_retryable_statuses():
    """Only 403, 429 and 503 are retried."""
    assert all(_is_retryable_status(s) for s in (403, 429, 503))
    assert not any(_is_retryable_status(s) for s in (200, 404, 500, None))


# --- Block-page detection ---


@pytest.mark.asyncio
async def test_is_bot_block_page_detects_indicators():
    """Challenge wording in title or body marks a block page."""
    page = AsyncMock()
    page.title = AsyncMock(return_value="Access Denied")
    page.inner_text = AsyncMock(return_value="")
    assert await is_bot_block_page(page) is True

    page2 = AsyncMock()
    page2.title = AsyncMock(return_value="Swiggy")
    page2.inner_text = AsyncMock(return_value="Please verify you are human to continue")
    assert await is_bot_block_page(page2) is True


@pytest.mark.asyncio
async def test_is_bot_block_page_normal_page_false():
    """A normal page is not a block page."""
    page = AsyncMock()
    page.title = AsyncMock(return_value="Order food online")
    page.inner_text = AsyncMock(return_value="Restaurants near you")

    assert await is_bot_block_page(page) is False


@pytest.mark.asyncio
async def test_is_bot_block_page_exception_returns_false():
    """An unreadable page is not treated as blocked."""
    page = AsyncMock()
    page.title = AsyncMock(side_effect=Exception("DOM error"))

    assert await is_bot_block_page(page) is False


# --- navigate_with_retry ---


@pytest.mark.asyncio
async def test_navigate_success_first_attempt():
    """A good response on the first attempt succeeds."""
    page = AsyncMock()
    response = _response(200)
    page.goto = AsyncMock(return_value=response)

    with patch(f"{MODULE}.is_bot_block_page", new_callable=AsyncMock, return_value=False):
        result = await navigate_with_retry(page, "https://www.swiggy.com", nav_timeout_ms=500)

    assert result.success is True
    assert result.response is response
    assert result.attempts == 1
    page.goto.assert_awaited_once_with("https://www.swiggy.com", wait_until="domcontentloaded", timeout=500)


@pytest.mark.asyncio
async def test_navigate_timeout_then_success():
    """A timeout is retried after a backoff."""
    page = AsyncMock()
    page.goto = AsyncMock(side_effect=[PlaywrightTimeoutError("timeout"), _response(200)])

    with (
        patch(f"{MODULE}.asyncio.sleep", new_callable=AsyncMock) as sleep,
        patch(f"{MODULE}.is_bot_block_page", new_callable=AsyncMock, return_value=False),
    ):
        result = await navigate_with_retry(page, "https://www.swiggy.com")

    assert result.success is True
    assert result.attempts == 2
    assert sleep.await_count == 1


@pytest.mark.asyncio
async def test_navigate_max_attempts_exhausted():
    """Repeated timeouts stop at the attempt limit."""
    page = AsyncMock()
    page.goto = AsyncMock(side_effect=PlaywrightTimeoutError("timeout"))

    with (
        patch(f"{MODULE}.asyncio.sleep", new_callable=AsyncMock),
        patch(f"{MODULE}.is_bot_block_page", new_callable=AsyncMock, return_value=False),
    ):
        result = await navigate_with_retry(page, "https://www.swiggy.com")

    assert result.success is False
    assert result.error_summary == "Navigation timeout"
    assert page.goto.await_count == MAX_NAV_ATTEMPTS


@pytest.mark.asyncio
async def test_navigate_429_every_attempt():
    """Rate limiting on every attempt fails after the limit."""
    page = AsyncMock()
    page.goto = AsyncMock(return_value=_response(429))

    with (
        patch(f"{MODULE}.asyncio.sleep", new_callable=AsyncMock),
        patch(f"{MODULE}.is_bot_block_page", new_callable=AsyncMock, return_value=False),
    ):
        result = await navigate_with_retry(page, "https://www.lenskart.com")

    assert result.success is False
    assert result.error_summary == "Rate limited (429)"
    assert page.goto.await_count == MAX_NAV_ATTEMPTS


@pytest.mark.asyncio
async def test_navigate_404_not_retried():
    """A 404 fails at once."""
    page = AsyncMock()
    page.goto = AsyncMock(return_value=_response(404))

    with patch(f"{MODULE}.is_bot_block_page", new_callable=AsyncMock, return_value=False):
        result = await navigate_with_retry(page, "https://www.lenskart.com/missing")

    assert result.success is False
    assert result.error_summary == "HTTP 404"
    assert page.goto.await_count == 1


@pytest.mark.asyncio
async def test_navigate_block_page_reported_not_bypassed():
    """A block page is reported and not retried."""
    page = AsyncMock()
    page.goto = AsyncMock(return_value=_response(200))

    with patch(f"{MODULE}.is_bot_block_page", new_callable=AsyncMock, return_value=True):
        result = await navigate_with_retry(page, "https://www.swiggy.com")

    assert result.success is False
    assert result.bot_block_detected is True
    assert result.error_summary == "Bot-block"
    assert page.goto.await_count == 1
    page.reload.assert_not_awaited()
