"""
Lenskart-style storefront.

- Auth: Branch B (sign-in, or create account with a single pivot back to
  sign-in when the number is already registered). Modals are left alone
  before auth so the sign-in dialog opens directly.
- Product cards open the detail page in a new browser tab, so add-to-cart
  goes through the cross-context handoff.
- The primary button on the detail page decides the route: a "select
  lenses" label opens the lens wizard, anything else goes straight on to
  the cart.
- Finalize presses "Proceed to checkout" on the cart page.
"""

from __future__ import annotations

import re
from typing import Optional

from funnel.interaction.handoff import open_in_new_context
from funnel.session import SessionState
from funnel.strategies.base import SiteStrategy
from shared.logging import get_logger

logger = get_logger(__name__)

SELECT_LENSES_PATTERN = re.compile(r"select\s+lenses", re.IGNORECASE)
PRIMARY_ACTION_SETTLE_MS = 2_000


class LenskartStrategy(SiteStrategy):
    name = "lenskart"
    supports_account_creation = True
    dismiss_modals_before_auth = False
    dismiss_modals_before_search = False

    async def read_primary_action(self, state: SessionState) -> Optional[str]:
        if not self.profile.has("primary_action"):
            return None
        for selector in self.profile.query("primary_action"):
            handle = await state.active_context.find_visible(selector, self.profile.timing.element_wait)
            if handle is not None:
                return await state.active_context.current_text(handle)
        return None

    async def open_product(self, state: SessionState) -> bool:
        outcome = await open_in_new_context(
            state,
            lambda: state.actions.click_with_retry(self.profile.query("product_card")),
            timeout_ms=self.config.handoff_timeout_ms,
            load_timeout_ms=self.profile.timing.long_wait * 3,
        )
        if not outcome:
            logger.error("add_to_cart.product_not_opened", error=outcome.error, triggered=outcome.triggered)
            return False
        await state.actions.pause(self.profile.timing.page_load)
        await state.capture("05_product_page")
        return True

    async def add_to_cart(self, state: SessionState) -> bool:
        if not self.profile.has("product_card"):
            logger.error("add_to_cart.control_undefined")
            return False
        if not await self.open_product(state):
            return False

        label = await self.read_primary_action(state)
        if label is None:
            logger.error("add_to_cart.primary_action_missing")
            return False
        needs_lenses = bool(SELECT_LENSES_PATTERN.search(label))
        logger.info("add_to_cart.primary_action", label=label, route="customize" if needs_lenses else "direct")

        clicked = await state.actions.click_with_retry(self.profile.query("primary_action"))
        if not clicked:
            logger.error("add_to_cart.primary_action_not_clickable", label=label)
            return False
        await state.actions.pause(PRIMARY_ACTION_SETTLE_MS)

        if needs_lenses:
            wizard = await self.customize(state)
            if not wizard:
                # Not fatal on its own; cart confirmation below decides.
                logger.warning("add_to_cart.customization_incomplete", steps=wizard.steps, rungs=wizard.rungs)

        confirmed = await self.confirm_in_cart(state, fallback=bool(clicked))
        if confirmed:
            await state.capture("06_cart")
        else:
            logger.error("add_to_cart.cart_not_reached")
        return confirmed
