"""
Swiggy-style food delivery storefront.

- Auth: Branch A (phone number only, then OTP).
- Location is required before search; the search input appears after
  clicking an opener.
- Add controls may sit below the fold: scan the listing in bounded scroll
  chunks, then fall back to opening the first restaurant. A details dialog
  that opens instead of the wizard is confirmed with its own add control.
- The header cart counter verifies the add (one retry when it did not go up).
- Finalize opens the cart from the top bar.
"""

from __future__ import annotations

from typing import Optional

from funnel.cart import CartVerification, confirm_cart_increase, read_cart_count
from funnel.interaction.constants import ADD_SCAN_CHUNKS, ADD_SCAN_PAUSE_MS, ADD_SCAN_SCROLL_PX
from funnel.session import SessionState
from funnel.strategies.base import SiteStrategy
from shared.logging import get_logger

logger = get_logger(__name__)

SCAN_CLICK_TIMEOUT_MS = 1_500
DETAILS_PROBE_MS = 1_500
POST_ADD_SETTLE_MS = 2_000


class SwiggyStrategy(SiteStrategy):
    name = "swiggy"

    def _counter_selector(self) -> Optional[str]:
        return self.profile.query("cart_count")[0] if self.profile.has("cart_count") else None

    async def read_count(self, state: SessionState) -> Optional[int]:
        return await read_cart_count(state.active_context, self._counter_selector())

    async def scan_for_add(self, state: SessionState) -> bool:
        """Try the add control, scrolling the listing between bounded attempts."""
        add = self.profile.query("add_button")
        for chunk in range(1, ADD_SCAN_CHUNKS + 1):
            clicked = await state.actions.click_with_retry(add, retries=1, timeout_ms=SCAN_CLICK_TIMEOUT_MS)
            if clicked:
                logger.info("add_to_cart.add_found", chunk=chunk, selector=clicked.selector)
                return True
            await state.active_context.scroll_by(ADD_SCAN_SCROLL_PX)
            await state.actions.pause(ADD_SCAN_PAUSE_MS)
        return False

    async def open_first_listing(self, state: SessionState) -> bool:
        if not self.profile.has("restaurant_link"):
            return False
        logger.info("add_to_cart.opening_restaurant")
        opened = await state.actions.click_with_retry(self.profile.query("restaurant_link"))
        if not opened:
            logger.error("add_to_cart.restaurant_not_found")
            return False
        await state.actions.pause(self.profile.timing.page_load)
        await state.capture("05_restaurant_menu")
        return True

    async def confirm_details_dialog(self, state: SessionState) -> None:
        if not self.profile.has("details_add"):
            return
        query = self.profile.query("details_add")
        if await state.actions.element_exists(query, DETAILS_PROBE_MS):
            clicked = await state.actions.click_with_retry(query, retries=1)
            logger.info("add_to_cart.details_dialog", clicked=bool(clicked))

    async def retry_add(self, state: SessionState) -> bool:
        """Wizard submit if it is still open, else the listing add control."""
        if self.profile.has("customize_submit") and await state.actions.element_exists(
            self.profile.query("customize_submit"), DETAILS_PROBE_MS
        ):
            return bool(await state.actions.click_with_retry(self.profile.query("customize_submit"), retries=1))
        return bool(await state.actions.click_with_retry(self.profile.query("add_button"), retries=1))

    async def add_to_cart(self, state: SessionState) -> bool:
        if not self.profile.has("add_button"):
            logger.error("add_to_cart.control_undefined")
            return False

        baseline = await self.read_count(state)
        logger.info("add_to_cart.baseline", cart_count=baseline)

        added = await self.scan_for_add(state)
        if not added:
            if not await self.open_first_listing(state):
                return False
            added = bool(await state.actions.click_with_retry(self.profile.query("add_button")))
            if not added:
                logger.error("add_to_cart.add_not_found_in_listing")
                return False

        await state.actions.pause(POST_ADD_SETTLE_MS)
        await self.confirm_details_dialog(state)

        wizard = await self.customize(state)
        if not wizard:
            logger.warning("add_to_cart.customization_incomplete", steps=wizard.steps, rungs=wizard.rungs)

        if baseline is None:
            confirmed = await self.confirm_in_cart(state, fallback=added)
        else:
            verification: CartVerification = await confirm_cart_increase(
                lambda: self.read_count(state),
                baseline,
                lambda: self.retry_add(state),
            )
            confirmed = verification.confirmed
        if confirmed:
            await state.capture("06_cart")
        return confirmed
