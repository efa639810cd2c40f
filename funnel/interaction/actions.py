"""
Resilient actions: selector fallback and retry wrappers over InteractionDriver.

Absence is the normal case in selector-fallback automation, so none of
these raise for "not found" except find_first_visible, whose callers have
declared the element mandatory. An empty ElementQuery is a programmer
error and raises ValueError everywhere.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Sequence, Union

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Locator

from funnel.errors import NotFound
from funnel.interaction.constants import (
    CLEAR_SETTLE_MS,
    CLICK_SETTLE_MS,
    CLICK_TIMEOUT_MS,
    DEFAULT_ACTION_TIMEOUT_MS,
    DEFAULT_CLICK_RETRIES,
    ELEMENT_EXISTS_TIMEOUT_MS,
    ESCAPE_SETTLE_MS,
    KEY_DELAY_MS,
    MIN_SELECTOR_SLICE_MS,
    MODAL_PROBE_TIMEOUT_MS,
    MODAL_SETTLE_MS,
    RETRY_PAUSE_MS,
    TYPE_SETTLE_MS,
)
from funnel.interaction.driver import InteractionDriver
from shared.logging import get_logger

logger = get_logger(__name__)

ElementQuery = tuple[str, ...]
QueryLike = Union[str, Sequence[str]]

Sleep = Callable[[float], Awaitable[None]]


def as_query(query: QueryLike) -> ElementQuery:
    """Normalize a selector or selector list into an ElementQuery; empty is an error."""
    if isinstance(query, str):
        selectors: ElementQuery = (query,)
    else:
        selectors = tuple(query)
    selectors = tuple(s for s in selectors if s)
    if not selectors:
        raise ValueError("ElementQuery must contain at least one selector")
    return selectors


@dataclass
class ActionOutcome:
    success: bool
    attempts: int
    last_error: Optional[str] = None
    selector: Optional[str] = None

    def __bool__(self) -> bool:
        return self.success


def _slice_ms(timeout_ms: int, parts: int) -> int:
    return max(MIN_SELECTOR_SLICE_MS, timeout_ms // max(1, parts))


class ResilientActions:
    """
    Selector-fallback actions bound to one driver.

    The session swaps `driver` when the active context changes; the sleep
    function is injectable so tests do not wait for real settle delays.
    """

    def __init__(self, driver: InteractionDriver, *, sleep: Sleep = asyncio.sleep) -> None:
        self.driver = driver
        self._sleep = sleep

    async def pause(self, ms: int) -> None:
        if ms > 0:
            await self._sleep(ms / 1000)

    async def _locate(self, query: ElementQuery, timeout_ms: int) -> tuple[Optional[str], Optional[Locator]]:
        per_selector = _slice_ms(timeout_ms, len(query))
        for selector in query:
            handle = await self.driver.find_visible(selector, per_selector)
            if handle is not None:
                return selector, handle
            logger.debug("actions.selector_missing", selector=selector, timeout_ms=per_selector)
        return None, None

    async def find_first_visible(self, query: QueryLike, timeout_ms: int = DEFAULT_ACTION_TIMEOUT_MS) -> str:
        """Return the first selector, in query order, that resolves to a visible element."""
        selectors = as_query(query)
        selector, _ = await self._locate(selectors, timeout_ms)
        if selector is None:
            raise NotFound(selectors)
        logger.info("actions.found", selector=selector)
        return selector

    async def click_with_retry(
        self,
        query: QueryLike,
        retries: int = DEFAULT_CLICK_RETRIES,
        timeout_ms: int = DEFAULT_ACTION_TIMEOUT_MS,
    ) -> ActionOutcome:
        """
        Click the first selector that works; up to `retries` full passes over the query.

        The timeout is split across retries x selectors. Returns the outcome
        and never raises on exhaustion.
        """
        selectors = as_query(query)
        if retries < 1:
            raise ValueError("retries must be >= 1")
        per_selector = _slice_ms(timeout_ms, retries * len(selectors))
        last_error: Optional[str] = None

        for attempt in range(1, retries + 1):
            for selector in selectors:
                handle = await self.driver.find_visible(selector, per_selector)
                if handle is None:
                    last_error = f"not visible: {selector}"
                    continue
                try:
                    await self.driver.click(handle, timeout_ms=max(per_selector, CLICK_TIMEOUT_MS))
                except PlaywrightError as e:
                    last_error = str(e)
                    logger.debug("actions.click_error", selector=selector, attempt=attempt, error=last_error)
                    continue
                logger.info("actions.click", selector=selector, attempt=attempt, retries=retries)
                await self.pause(CLICK_SETTLE_MS)
                return ActionOutcome(success=True, attempts=attempt, selector=selector)
            if attempt < retries:
                await self.pause(RETRY_PAUSE_MS)

        logger.warning(
            "actions.click_exhausted",
            selectors=list(selectors),
            retries=retries,
            last_error=last_error,
        )
        return ActionOutcome(success=False, attempts=retries, last_error=last_error)

    async def type_into(
        self,
        query: QueryLike,
        text: str,
        *,
        clear_first: bool = True,
        press_enter: bool = False,
        timeout_ms: int = DEFAULT_ACTION_TIMEOUT_MS,
        key_delay_ms: int = KEY_DELAY_MS,
    ) -> ActionOutcome:
        """Type text into the first visible field of query, optionally clearing first and submitting."""
        selectors = as_query(query)
        selector, handle = await self._locate(selectors, timeout_ms)
        if handle is None:
            logger.warning("actions.type_target_missing", selectors=list(selectors))
            return ActionOutcome(success=False, attempts=1, last_error="no visible field")
        try:
            if clear_first:
                # Triple-click selects the field content even when it has no focus yet.
                await self.driver.click(handle, click_count=3, timeout_ms=CLICK_TIMEOUT_MS)
                await self.driver.press("Backspace")
                await self.pause(CLEAR_SETTLE_MS)
            else:
                await self.driver.click(handle, timeout_ms=CLICK_TIMEOUT_MS)
            await self.driver.type(handle, text, key_delay_ms)
            if press_enter:
                await self.driver.press("Enter")
        except PlaywrightError as e:
            logger.warning("actions.type_failed", selector=selector, error=str(e))
            return ActionOutcome(success=False, attempts=1, last_error=str(e), selector=selector)
        logger.info("actions.type", selector=selector, chars=len(text), press_enter=press_enter)
        await self.pause(TYPE_SETTLE_MS)
        return ActionOutcome(success=True, attempts=1, selector=selector)

    async def element_exists(self, query: QueryLike, timeout_ms: int = ELEMENT_EXISTS_TIMEOUT_MS) -> bool:
        selectors = as_query(query)
        selector, _ = await self._locate(selectors, timeout_ms)
        return selector is not None

    async def press(self, key: str) -> bool:
        try:
            await self.driver.press(key)
        except PlaywrightError as e:
            logger.warning("actions.press_failed", key=key, error=str(e))
            return False
        return True

    async def close_modal_if_present(self, query: QueryLike) -> bool:
        """
        Dismiss a blocking modal: click the first present dismiss control,
        else press Escape. Returns True when a dismiss control was clicked.
        """
        selectors = as_query(query)
        for selector in selectors:
            handle = await self.driver.find_visible(selector, MODAL_PROBE_TIMEOUT_MS)
            if handle is None:
                continue
            try:
                await self.driver.click(handle, timeout_ms=CLICK_TIMEOUT_MS)
            except PlaywrightError as e:
                logger.debug("actions.modal_click_error", selector=selector, error=str(e))
                continue
            logger.info("actions.modal_closed", selector=selector)
            await self.pause(MODAL_SETTLE_MS)
            return True
        await self.press("Escape")
        logger.info("actions.modal_escape")
        await self.pause(ESCAPE_SETTLE_MS)
        return False
