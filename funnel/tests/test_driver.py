"""
Unit tests for InteractionDriver over a mocked Playwright page.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from funnel.interaction.driver import InteractionDriver
from funnel.interaction.predicates import PREDICATE_EVAL_JS, Exists


def _page_with_locator(wait_for: AsyncMock) -> MagicMock:
    page = MagicMock()
    locator = MagicMock()
    locator.first.wait_for = wait_for
    page.locator.return_value = locator
    return page


@pytest.mark.asyncio
async def test_find_visible_returns_first_match():
    """find_visible waits for the first match to become visible."""
    page = _page_with_locator(AsyncMock())

    handle = await InteractionDriver(page).find_visible("button.add", 1_500)

    assert handle is page.locator.return_value.first
    handle.wait_for.assert_awaited_once_with(state="visible", timeout=1_500)


@pytest.mark.asyncio
async def test_find_visible_absent_on_timeout_or_error():
    """Timeouts and selector errors both mean absent."""
    driver = InteractionDriver(_page_with_locator(AsyncMock(side_effect=PlaywrightTimeoutError("timeout"))))
    assert await driver.find_visible("button.add", 100) is None

    driver = InteractionDriver(_page_with_locator(AsyncMock(side_effect=PlaywrightError("bad selector"))))
    assert await driver.find_visible("button:::", 100) is None


@pytest.mark.asyncio
async def test_click_errors_propagate():
    """Click errors are left to the caller."""
    handle = MagicMock()
    handle.click = AsyncMock(side_effect=PlaywrightError("detached"))

    with pytest.raises(PlaywrightError):
        await InteractionDriver(MagicMock()).click(handle)


@pytest.mark.asyncio
async def test_type_sends_key_events():
    """Typing sends key events with the requested delay."""
    handle = MagicMock()
    handle.press_sequentially = AsyncMock()

    await InteractionDriver(MagicMock()).type(handle, "9000000001", 60)

    handle.press_sequentially.assert_awaited_once_with("9000000001", delay=60)


@pytest.mark.asyncio
async def test_evaluate_sends_serialized_predicate():
    """Predicates are sent to the page as their dict form."""
    page = MagicMock()
    page.evaluate = AsyncMock(return_value=1)

    assert await InteractionDriver(page).evaluate(Exists("div.results")) is True
    page.evaluate.assert_awaited_once_with(PREDICATE_EVAL_JS, Exists("div.results").to_dict())


@pytest.mark.asyncio
async def test_wait_for_load_timeout_is_false():
    """A load-state timeout returns False."""
    page = MagicMock()
    page.wait_for_load_state = AsyncMock(side_effect=PlaywrightTimeoutError("timeout"))

    assert await InteractionDriver(page).wait_for_load() is False


@pytest.mark.asyncio
async def test_subscribe_once_offers_first_page_and_unsubscribes():
    """Only the first new page is offered and the listener is removed."""
    page = MagicMock()
    context = page.context
    driver = InteractionDriver(page)

    slot = driver.subscribe_once()
    event_kind, listener = context.on.call_args.args
    assert event_kind == "page"

    new_page = MagicMock()
    listener(new_page)
    listener(MagicMock())
    taken = await slot.take(100)

    assert isinstance(taken, InteractionDriver)
    assert taken.page is new_page
    context.remove_listener.assert_called_once_with("page", listener)
