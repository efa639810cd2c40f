"""
Cart counter reading and add-to-cart verification.

An add that does not raise the counter gets exactly one retry; a second
miss is reported as failure. There is no open-ended retry loop.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from playwright.async_api import Error as PlaywrightError

from funnel.interaction.driver import InteractionDriver
from shared.logging import get_logger

logger = get_logger(__name__)

# Badge number inside the counter element; else the first number next to a "cart" label.
CART_COUNT_JS = """
(selector) => {
  const badge = selector ? document.querySelector(selector) : null;
  const txt = ((badge && (badge.innerText || badge.textContent)) || '').trim();
  const n = parseInt(txt, 10);
  if (!isNaN(n)) return n;
  const node = Array.from(document.querySelectorAll('a,span,div'))
    .find(el => /\\bcart\\b/i.test(el.innerText || ''));
  if (node) {
    const m = (node.innerText || '').match(/(\\d+)/);
    if (m) return parseInt(m[1], 10);
  }
  return null;
}
"""


async def read_cart_count(driver: InteractionDriver, selector: Optional[str]) -> Optional[int]:
    """Current cart counter value, or None when no counter is readable."""
    try:
        value = await driver.evaluate_script(CART_COUNT_JS, selector or "")
    except PlaywrightError as e:
        logger.debug("cart.count_unreadable", error=str(e))
        return None
    if isinstance(value, (int, float)):
        return int(value)
    return None


@dataclass
class CartVerification:
    confirmed: bool
    retried: bool
    before: Optional[int]
    after: Optional[int]

    def __bool__(self) -> bool:
        return self.confirmed


def _increased(before: Optional[int], after: Optional[int]) -> bool:
    if after is None:
        return False
    return after > (before or 0)


async def confirm_cart_increase(
    read_count: Callable[[], Awaitable[Optional[int]]],
    baseline: Optional[int],
    retry_add: Callable[[], Awaitable[object]],
) -> CartVerification:
    """Check the counter went up; otherwise retry the add once and check again."""
    after = await read_count()
    if _increased(baseline, after):
        logger.info("cart.count_increased", before=baseline, after=after)
        return CartVerification(confirmed=True, retried=False, before=baseline, after=after)

    logger.warning("cart.count_unchanged", before=baseline, after=after, action="retry_add_once")
    await retry_add()
    after = await read_count()
    if _increased(baseline, after):
        logger.info("cart.count_increased", before=baseline, after=after, retried=True)
        return CartVerification(confirmed=True, retried=True, before=baseline, after=after)

    logger.error("cart.count_unchanged_after_retry", before=baseline, after=after)
    return CartVerification(confirmed=False, retried=True, before=baseline, after=after)
