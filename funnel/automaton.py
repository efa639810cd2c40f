"""
SessionAutomaton: the phase sequencer.

    Init -> Authenticate -> SetLocation (when required) -> Search -> AddToCart -> Finalize

| Phase        | On failure                                   |
|--------------|----------------------------------------------|
| Init         | fatal, run aborted                           |
| Authenticate | logged, run continues                        |
| SetLocation  | logged, run continues                        |
| Search       | fatal, run aborted                           |
| AddToCart    | fatal, run aborted                           |
| Finalize     | logged, run still reported successful        |

Critical phases raise PhaseFailed; run() turns that into a failed
RunResult after a final diagnostic capture. Site-specific work is
delegated to the SiteStrategy chosen from the profile.
"""

from __future__ import annotations

from typing import Optional

import structlog
from playwright.async_api import Error as PlaywrightError

from funnel.errors import PhaseFailed
from funnel.session import Phase, PhaseOutcome, RunResult, SessionState
from funnel.site_profiles import SiteProfile
from funnel.strategies.base import AuthStatus, SiteStrategy
from shared.config import AppConfig
from shared.logging import get_logger

logger = get_logger(__name__)

_AUTH_OUTCOMES = {
    AuthStatus.AUTHENTICATED: PhaseOutcome.SUCCESS,
    AuthStatus.TIMED_OUT: PhaseOutcome.TIMED_OUT,
    AuthStatus.SKIPPED: PhaseOutcome.SKIPPED,
    AuthStatus.UNRESOLVED: PhaseOutcome.FAILED,
}


class SessionAutomaton:
    def __init__(
        self,
        profile: SiteProfile,
        strategy: SiteStrategy,
        state: SessionState,
        config: AppConfig,
    ) -> None:
        self.profile = profile
        self.strategy = strategy
        self.state = state
        self.config = config

    def _enter(self, phase: Phase) -> None:
        structlog.contextvars.bind_contextvars(phase=phase.value)
        self.state.enter(phase)

    def _fail(self, reason: str) -> PhaseFailed:
        phase = self.state.phase
        self.state.exit(PhaseOutcome.FAILED, reason)
        return PhaseFailed(phase.value, reason)

    async def _init(self) -> None:
        self._enter(Phase.INIT)
        try:
            result = await self.state.active_context.navigate(self.profile.base_url)
        except PlaywrightError as e:
            raise self._fail(f"navigation error: {e}") from e
        if not result.success:
            raise self._fail(result.error_summary or "navigation failed")
        await self.state.actions.pause(self.profile.timing.page_load)
        await self.state.capture("01_homepage")
        self.state.exit(PhaseOutcome.SUCCESS, f"loaded {self.profile.base_url}")

    async def _authenticate(self) -> None:
        self._enter(Phase.AUTHENTICATE)
        try:
            outcome = await self.strategy.authenticate(self.state)
        except PlaywrightError as e:
            logger.warning("phase.optimistic_continue", error=str(e))
            self.state.exit(PhaseOutcome.FAILED, str(e))
            return
        self.state.exit(_AUTH_OUTCOMES[outcome.status], outcome.detail or outcome.status.value)
        if outcome.status is not AuthStatus.AUTHENTICATED:
            logger.warning("phase.optimistic_continue", auth_status=outcome.status.value)

    async def _set_location(self) -> None:
        self._enter(Phase.SET_LOCATION)
        try:
            ok = await self.strategy.set_location(self.state)
        except PlaywrightError as e:
            logger.warning("phase.optimistic_continue", error=str(e))
            self.state.exit(PhaseOutcome.FAILED, str(e))
            return
        self.state.exit(PhaseOutcome.SUCCESS if ok else PhaseOutcome.FAILED, self.profile.default_location)
        if not ok:
            logger.warning("phase.optimistic_continue")

    async def _search(self, term: str) -> None:
        self._enter(Phase.SEARCH)
        try:
            ok = await self.strategy.search(self.state, term)
        except PlaywrightError as e:
            raise self._fail(f"search error: {e}") from e
        if not ok:
            raise self._fail("search results not confirmed")
        self.state.exit(PhaseOutcome.SUCCESS, term)

    async def _add_to_cart(self) -> None:
        self._enter(Phase.ADD_TO_CART)
        try:
            ok = await self.strategy.add_to_cart(self.state)
        except PlaywrightError as e:
            raise self._fail(f"add to cart error: {e}") from e
        if not ok:
            raise self._fail("item not confirmed in cart")
        self.state.exit(PhaseOutcome.SUCCESS)

    async def _finalize(self) -> None:
        self._enter(Phase.FINALIZE)
        try:
            ok = await self.strategy.finalize(self.state)
        except PlaywrightError as e:
            logger.warning("finalize.error", error=str(e))
            ok = False
        self.state.exit(PhaseOutcome.SUCCESS if ok else PhaseOutcome.FAILED)

    async def run(self, search_term: str) -> RunResult:
        """Run every phase in order; returns the run result, raising only on programmer error."""
        logger.info("session.start", strategy=self.strategy.name, search_term=search_term)
        failed: Optional[PhaseFailed] = None
        try:
            await self._init()
            await self._authenticate()
            if self.profile.flags.requires_location:
                await self._set_location()
            await self._search(search_term)
            await self._add_to_cart()
            await self._finalize()
        except PhaseFailed as e:
            failed = e
        except Exception:
            logger.exception("session.fatal", phase=self.state.phase.value)
            await self.state.capture("error_final")
            raise
        finally:
            structlog.contextvars.unbind_contextvars("phase")

        if failed is not None:
            logger.error("session.failed", phase=failed.phase, reason=failed.reason)
            await self.state.capture(f"error_{failed.phase}")
            await self.state.capture("error_final")
            return RunResult(
                success=False,
                history=list(self.state.history),
                failed_phase=Phase(failed.phase),
                error=str(failed),
            )

        logger.info("session.completed", phases=[r.phase.value for r in self.state.history])
        return RunResult(success=True, history=list(self.state.history))
