"""
Per-run session state and phase bookkeeping.

SessionState is owned by the SessionAutomaton and passed by reference to
strategy methods; there is no module-level run state. Exactly one browsing
context is active at a time; activate() reassigns it and rebinds the
action/wait helpers, leaving the previous context open but unaddressed.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Optional

from funnel.diagnostics import DiagnosticsSink
from funnel.interaction.actions import ResilientActions
from funnel.interaction.driver import InteractionDriver
from funnel.interaction.waiter import ConditionWaiter
from shared.logging import get_logger

if TYPE_CHECKING:
    from funnel.interaction.handoff import OneShotSlot

logger = get_logger(__name__)


class Phase(str, Enum):
    INIT = "init"
    AUTHENTICATE = "authenticate"
    SET_LOCATION = "set_location"
    SEARCH = "search"
    ADD_TO_CART = "add_to_cart"
    FINALIZE = "finalize"


class PhaseOutcome(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    SKIPPED = "skipped"


class AuthMode(str, Enum):
    AUTO = "auto"
    SIGNIN = "signin"
    SIGNUP = "signup"


@dataclass
class PhaseRecord:
    phase: Phase
    outcome: PhaseOutcome
    detail: Optional[str] = None
    elapsed_ms: int = 0


@dataclass
class SessionState:
    site_id: str
    auth_mode: AuthMode
    active_context: InteractionDriver
    actions: ResilientActions
    waiter: ConditionWaiter
    diagnostics: Optional[DiagnosticsSink] = None
    phase: Phase = Phase.INIT
    history: list[PhaseRecord] = field(default_factory=list)
    pending_subscription: Optional["OneShotSlot[InteractionDriver]"] = None
    _phase_started: float = field(default=0.0, repr=False)

    def enter(self, phase: Phase) -> None:
        self.phase = phase
        self._phase_started = time.monotonic()
        logger.info("phase.enter", phase=phase.value)

    def exit(self, outcome: PhaseOutcome, detail: Optional[str] = None) -> PhaseRecord:
        elapsed = int((time.monotonic() - self._phase_started) * 1000) if self._phase_started else 0
        record = PhaseRecord(self.phase, outcome, detail, elapsed)
        self.history.append(record)
        log = logger.warning if outcome in (PhaseOutcome.FAILED, PhaseOutcome.TIMED_OUT) else logger.info
        log("phase.exit", phase=self.phase.value, outcome=outcome.value, detail=detail, elapsed_ms=elapsed)
        return record

    def activate(self, context: InteractionDriver) -> None:
        """Make context the single active browsing context."""
        previous = self.active_context
        self.active_context = context
        self.actions.driver = context
        self.waiter.driver = context
        logger.info("session.context_switched", previous_url=previous.url, url=context.url)

    async def capture(self, label: str) -> None:
        if self.diagnostics is not None:
            await self.diagnostics.capture(self.active_context, label)


@dataclass
class RunResult:
    success: bool
    history: list[PhaseRecord]
    failed_phase: Optional[Phase] = None
    error: Optional[str] = None

    @property
    def exit_code(self) -> int:
        return 0 if self.success else 1

    def outcome_of(self, phase: Phase) -> Optional[PhaseOutcome]:
        for record in self.history:
            if record.phase is phase:
                return record.outcome
        return None
