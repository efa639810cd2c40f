"""
Generic strategy for profiles loaded from a file without a dedicated strategy.

Add-to-cart clicks the profile's add control (or the first product card),
walks the customization wizard if one opens, and confirms via the cart
view or counter when the profile defines one.
"""

from __future__ import annotations

from typing import Optional

from funnel.cart import confirm_cart_increase, read_cart_count
from funnel.session import SessionState
from funnel.strategies.base import SiteStrategy
from shared.logging import get_logger

logger = get_logger(__name__)


class GenericStrategy(SiteStrategy):
    name = "generic"

    def _counter_selector(self) -> Optional[str]:
        return self.profile.query("cart_count")[0] if self.profile.has("cart_count") else None

    async def add_to_cart(self, state: SessionState) -> bool:
        control = "add_button" if self.profile.has("add_button") else "product_card"
        if not self.profile.has(control):
            logger.error("add_to_cart.control_undefined")
            return False

        selector = self._counter_selector()
        baseline = await read_cart_count(state.active_context, selector) if selector else None

        clicked = await state.actions.click_with_retry(self.profile.query(control))
        if not clicked:
            logger.error("add_to_cart.control_not_found", control=control)
            return False

        await self.customize(state)

        if selector and baseline is not None:
            verification = await confirm_cart_increase(
                lambda: read_cart_count(state.active_context, selector),
                baseline,
                lambda: state.actions.click_with_retry(self.profile.query(control), retries=1),
            )
            confirmed = verification.confirmed
        else:
            confirmed = await self.confirm_in_cart(state, fallback=True)
        if confirmed:
            await state.capture("06_cart")
        return confirmed
