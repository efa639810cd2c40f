"""
InteractionDriver: thin capability surface over a Playwright page.

Every call may suspend and every call may time out. Absence is reported as
None / False; Playwright errors from click/type/press propagate so that the
resilient wrappers above can count them as failed attempts.
"""

from __future__ import annotations

from typing import Any, Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Locator, Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from funnel.interaction.constants import NEW_CONTEXT_EVENT
from funnel.interaction.handoff import OneShotSlot
from funnel.interaction.navigation_retry import NavigateResult, navigate_with_retry
from funnel.interaction.predicates import PREDICATE_EVAL_JS, Predicate
from shared.logging import get_logger

logger = get_logger(__name__)


class InteractionDriver:
    """One browsing context (a Playwright Page) and the operations the automaton needs."""

    def __init__(self, page: Page) -> None:
        self.page = page

    @property
    def url(self) -> str:
        return self.page.url

    async def navigate(self, url: str, *, nav_timeout_ms: Optional[int] = None) -> NavigateResult:
        if nav_timeout_ms is None:
            return await navigate_with_retry(self.page, url)
        return await navigate_with_retry(self.page, url, nav_timeout_ms=nav_timeout_ms)

    async def find_visible(self, selector: str, timeout_ms: int) -> Optional[Locator]:
        """First element matching selector once visible, or None when it does not show up in time."""
        locator = self.page.locator(selector).first
        try:
            await locator.wait_for(state="visible", timeout=timeout_ms)
        except PlaywrightTimeoutError:
            return None
        except PlaywrightError as e:
            # Malformed selector or detached frame: same outcome as absence for the caller.
            logger.debug("driver.find_visible_error", selector=selector, error=str(e))
            return None
        return locator

    async def click(self, handle: Locator, *, click_count: int = 1, timeout_ms: int = 5_000) -> None:
        await handle.click(click_count=click_count, timeout=timeout_ms)

    async def type(self, handle: Locator, text: str, key_delay_ms: int) -> None:
        # Discrete key events; some validators ignore programmatic value changes.
        await handle.press_sequentially(text, delay=key_delay_ms)

    async def press(self, key: str) -> None:
        await self.page.keyboard.press(key)

    async def current_text(self, handle: Locator) -> str:
        return (await handle.inner_text()).strip()

    async def evaluate(self, predicate: Predicate) -> bool:
        """Evaluate a serialized predicate tree against the live document."""
        return bool(await self.page.evaluate(PREDICATE_EVAL_JS, predicate.to_dict()))

    async def evaluate_script(self, script: str, arg: Any = None) -> Any:
        if arg is None:
            return await self.page.evaluate(script)
        return await self.page.evaluate(script, arg)

    async def wait_for_load(self, state: str = "domcontentloaded", timeout_ms: int = 30_000) -> bool:
        try:
            await self.page.wait_for_load_state(state, timeout=timeout_ms)
        except PlaywrightTimeoutError:
            logger.warning("driver.load_state_timeout", state=state, timeout_ms=timeout_ms)
            return False
        return True

    async def scroll_by(self, dy: int) -> None:
        await self.page.evaluate("(dy) => window.scrollBy(0, dy)", dy)

    async def screenshot(self, *, full_page: bool = True) -> bytes:
        return await self.page.screenshot(full_page=full_page)

    def subscribe_once(self, event_kind: str = NEW_CONTEXT_EVENT) -> "OneShotSlot[InteractionDriver]":
        """
        Register a one-shot listener for a new page in this page's browser context.

        The returned slot receives the first new page wrapped as an
        InteractionDriver; later events are ignored. Closing the slot removes
        the listener.
        """
        context = self.page.context
        slot: OneShotSlot[InteractionDriver] = OneShotSlot(label=event_kind)

        def _on_new_page(new_page: Page) -> None:
            if slot.offer(InteractionDriver(new_page)):
                logger.info("handoff.event_received", event_kind=event_kind)

        context.on(event_kind, _on_new_page)
        slot.on_close(lambda: context.remove_listener(event_kind, _on_new_page))
        return slot
