"""
Cross-context handoff.

Some triggers (opening a product, for instance) make the browser create a
new page instead of navigating the current one. The protocol:

1. subscribe for "new context" on the active context,
2. fire the trigger,
3. take the new context from the one-shot slot (bounded wait),
4. make it the session's active context.

The previous context is left open and is not reacquired. At most one
subscription may be pending per session.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import TYPE_CHECKING, Awaitable, Callable, Generic, Optional, TypeVar

from funnel.errors import HandoffError
from shared.logging import get_logger

if TYPE_CHECKING:
    from funnel.interaction.driver import InteractionDriver
    from funnel.session import SessionState

logger = get_logger(__name__)

T = TypeVar("T")


class OneShotSlot(Generic[T]):
    """
    Single-slot mailbox: written at most once, read at most once.

    The timeout in take() acts as the alternate writer. Whichever completes
    first wins; the slot is closed afterwards and later offers are dropped.
    """

    def __init__(self, label: str = "slot") -> None:
        self.label = label
        self._event = asyncio.Event()
        self._value: Optional[T] = None
        self._written = False
        self._read = False
        self._closed = False
        self._teardown: Optional[Callable[[], None]] = None

    @property
    def written(self) -> bool:
        return self._written

    @property
    def closed(self) -> bool:
        return self._closed

    def on_close(self, teardown: Callable[[], None]) -> None:
        self._teardown = teardown

    def offer(self, value: T) -> bool:
        """Write the value. Returns False (and drops value) when already written or closed."""
        if self._written or self._closed:
            return False
        self._value = value
        self._written = True
        self._event.set()
        return True

    async def take(self, timeout_ms: int) -> Optional[T]:
        """Wait for the value; None on timeout. A second read raises HandoffError."""
        if self._read:
            raise HandoffError(f"{self.label} slot already read")
        self._read = True
        try:
            if not self._written:
                await asyncio.wait_for(self._event.wait(), timeout=timeout_ms / 1000)
        except asyncio.TimeoutError:
            pass
        finally:
            self.close()
        return self._value if self._written else None

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._teardown is not None:
            teardown, self._teardown = self._teardown, None
            teardown()


@dataclass
class HandoffOutcome:
    """Result of open_in_new_context."""

    acquired: bool
    triggered: bool
    error: Optional[str] = None

    def __bool__(self) -> bool:
        return self.acquired


async def open_in_new_context(
    state: "SessionState",
    trigger: Callable[[], Awaitable[object]],
    *,
    timeout_ms: int,
    load_timeout_ms: int = 30_000,
) -> HandoffOutcome:
    """
    Subscribe, fire trigger, and switch the session to the page it spawns.

    trigger is awaited after the subscription exists; its truthiness says
    whether the triggering action itself succeeded.
    """
    if state.pending_subscription is not None:
        raise HandoffError("a new-context subscription is already pending")

    slot: OneShotSlot[InteractionDriver] = state.active_context.subscribe_once()
    state.pending_subscription = slot
    logger.info("handoff.subscribed", timeout_ms=timeout_ms)
    try:
        triggered = bool(await trigger())
        if not triggered:
            logger.warning("handoff.trigger_failed")
            return HandoffOutcome(acquired=False, triggered=False, error="trigger action failed")
        new_context = await slot.take(timeout_ms)
    finally:
        slot.close()
        state.pending_subscription = None

    if new_context is None:
        logger.warning("handoff.timed_out", timeout_ms=timeout_ms)
        return HandoffOutcome(
            acquired=False,
            triggered=True,
            error=f"no new context within {timeout_ms} ms",
        )

    await new_context.wait_for_load("domcontentloaded", timeout_ms=load_timeout_ms)
    state.activate(new_context)
    logger.info("handoff.context_acquired", url=new_context.url)
    return HandoffOutcome(acquired=True, triggered=True)
