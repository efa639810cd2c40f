"""
ConditionWaiter: poll live document state until a condition holds or time runs out.

A timed-out wait is an outcome, not an error. Callers decide whether to
continue optimistically (auth, location) or abort (critical phases).
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Union

from playwright.async_api import Error as PlaywrightError

from funnel.interaction.constants import POLL_INTERVAL_MS
from funnel.interaction.driver import InteractionDriver
from funnel.interaction.predicates import AllOf, Not, Predicate, is_predicate
from shared.logging import get_logger

logger = get_logger(__name__)

Condition = Union[Predicate, Callable[[], Awaitable[bool]]]


class WaitStatus(str, Enum):
    SATISFIED = "satisfied"
    TIMED_OUT = "timed_out"


@dataclass
class WaitOutcome:
    status: WaitStatus
    elapsed_ms: int

    @property
    def satisfied(self) -> bool:
        return self.status is WaitStatus.SATISFIED

    def __bool__(self) -> bool:
        return self.satisfied


class ConditionWaiter:
    """
    Poll-until-true against one driver.

    clock and sleep are injectable; tests drive both from a fake clock so a
    60 s wait completes instantly.
    """

    def __init__(
        self,
        driver: InteractionDriver,
        *,
        poll_ms: int = POLL_INTERVAL_MS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.driver = driver
        self.poll_ms = poll_ms
        self._clock = clock
        self._sleep = sleep

    async def _check(self, condition: Condition) -> bool:
        try:
            if is_predicate(condition):
                return await self.driver.evaluate(condition)  # type: ignore[arg-type]
            return bool(await condition())  # type: ignore[operator]
        except PlaywrightError as e:
            if "not a valid selector" in str(e):
                logger.warning("waiter.invalid_selector", error=str(e))
            else:
                # Navigation in flight destroys the execution context; treat as "not yet".
                logger.debug("waiter.evaluate_error", error=str(e))
            return False

    async def until(self, condition: Condition, timeout_ms: int, *, label: str = "condition") -> WaitOutcome:
        """Poll condition every poll_ms; resolve SATISFIED or TIMED_OUT after timeout_ms."""
        start = self._clock()
        deadline = start + timeout_ms / 1000
        while True:
            if await self._check(condition):
                elapsed = int((self._clock() - start) * 1000)
                logger.info("waiter.satisfied", label=label, elapsed_ms=elapsed)
                return WaitOutcome(WaitStatus.SATISFIED, elapsed)
            now = self._clock()
            if now >= deadline:
                elapsed = int((now - start) * 1000)
                logger.warning("waiter.timed_out", label=label, timeout_ms=timeout_ms)
                return WaitOutcome(WaitStatus.TIMED_OUT, elapsed)
            await self._sleep(min(self.poll_ms / 1000, deadline - now))

    async def appearance(self, target: Predicate, timeout_ms: int, *, label: str = "appearance") -> WaitOutcome:
        """Wait until target condition is present."""
        return await self.until(target, timeout_ms, label=label)

    async def absence_with_alternative(
        self,
        trigger: Predicate,
        alternative: Predicate,
        timeout_ms: int,
        *,
        label: str = "transition",
    ) -> WaitOutcome:
        """Wait until trigger is gone AND alternative positive signal is present."""
        return await self.until(AllOf((Not(trigger), alternative)), timeout_ms, label=label)
