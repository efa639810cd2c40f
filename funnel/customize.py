"""
Step-walking customization wizard.

Each iteration inspects the live dialog and runs the first rung of a fixed
ladder that applies:

    continue       click the primary continue control, loop
    submit         click the terminal add/submit control, done
    select_option  pick the first unselected choice in document order, loop
    label_fallback click any dialog button labelled continue/add, loop

The ladder is a fixed-budget fallback, not a converging algorithm. When
the step budget runs out without reaching submit, one direct submit
attempt is made and the wizard is reported incomplete.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

from funnel.interaction.actions import ElementQuery, ResilientActions
from funnel.interaction.constants import DIALOG_CONTAINER
from funnel.site_profiles import SiteProfile
from shared.logging import get_logger

logger = get_logger(__name__)

PROBE_TIMEOUT_MS = 600
RUNG_CLICK_TIMEOUT_MS = 3_000
CONTINUE_SETTLE_MS = 900
OPTION_SETTLE_MS = 400
FALLBACK_SETTLE_MS = 800
SUBMIT_SETTLE_MS = 1_200
LABEL_FALLBACK_PATTERN = "continue|add"
DEFAULT_MAX_STEPS = 6


@dataclass(frozen=True)
class WizardQueries:
    container: ElementQuery
    continue_control: ElementQuery
    submit_control: ElementQuery
    option: ElementQuery

    @classmethod
    def from_profile(cls, profile: SiteProfile) -> "WizardQueries":
        return cls(
            container=profile.selectors.get("customize_dialog") or (DIALOG_CONTAINER,),
            continue_control=profile.selectors.get("customize_continue", ()),
            submit_control=profile.selectors.get("customize_submit", ()),
            option=profile.selectors.get("customize_option", ()),
        )

    @property
    def scope(self) -> str:
        return ", ".join(self.container)

    @property
    def unselected_option(self) -> ElementQuery:
        # Playwright chaining: options inside the wizard container that are not checked.
        return tuple(f"{self.scope} >> {opt}:not(:checked)" for opt in self.option)

    @property
    def label_fallback(self) -> ElementQuery:
        return (f'{self.scope} >> button:text-matches("{LABEL_FALLBACK_PATTERN}", "i")',)


@dataclass(frozen=True)
class CustomizationStep:
    """Snapshot of one wizard screen; recomputed every iteration."""

    has_options_to_select: bool
    has_continue_control: bool
    has_final_submit_control: bool


@dataclass
class CustomizeOutcome:
    completed: bool
    steps: int
    rungs: list[str] = field(default_factory=list)
    final_attempt: Optional[bool] = None
    skipped: bool = False

    def __bool__(self) -> bool:
        return self.completed


async def _probe(actions: ResilientActions, query: ElementQuery) -> bool:
    if not query:
        return False
    return await actions.element_exists(query, PROBE_TIMEOUT_MS)


async def inspect_step(actions: ResilientActions, queries: WizardQueries) -> CustomizationStep:
    return CustomizationStep(
        has_options_to_select=await _probe(actions, queries.unselected_option),
        has_continue_control=await _probe(actions, queries.continue_control),
        has_final_submit_control=await _probe(actions, queries.submit_control),
    )


@dataclass(frozen=True)
class Rung:
    name: str
    terminal: bool
    applies: Callable[[CustomizationStep], bool]
    query: Callable[[WizardQueries], ElementQuery]
    settle_ms: int


LADDER: tuple[Rung, ...] = (
    Rung("continue", False, lambda s: s.has_continue_control, lambda q: q.continue_control, CONTINUE_SETTLE_MS),
    Rung("submit", True, lambda s: s.has_final_submit_control, lambda q: q.submit_control, SUBMIT_SETTLE_MS),
    Rung("select_option", False, lambda s: s.has_options_to_select, lambda q: q.unselected_option, OPTION_SETTLE_MS),
    Rung("label_fallback", False, lambda s: True, lambda q: q.label_fallback, FALLBACK_SETTLE_MS),
)


async def run_ladder(
    actions: ResilientActions,
    queries: WizardQueries,
    step: CustomizationStep,
    ladder: tuple[Rung, ...] = LADDER,
) -> Optional[Rung]:
    """Run the first applicable rung that succeeds; None when every rung failed."""
    for rung in ladder:
        query = rung.query(queries)
        if not query or not rung.applies(step):
            continue
        outcome = await actions.click_with_retry(query, retries=1, timeout_ms=RUNG_CLICK_TIMEOUT_MS)
        if outcome:
            await actions.pause(rung.settle_ms)
            return rung
        logger.debug("customize.rung_failed", rung=rung.name, error=outcome.last_error)
    return None


async def walk_wizard(
    actions: ResilientActions,
    queries: WizardQueries,
    *,
    max_steps: int = DEFAULT_MAX_STEPS,
    on_step: Optional[Callable[[int], Awaitable[None]]] = None,
) -> CustomizeOutcome:
    """Walk the wizard for at most max_steps iterations."""
    rungs: list[str] = []
    for index in range(1, max_steps + 1):
        step = await inspect_step(actions, queries)
        if on_step is not None:
            await on_step(index)
        rung = await run_ladder(actions, queries, step)
        logger.info(
            "customize.step",
            step=index,
            max_steps=max_steps,
            rung=rung.name if rung else None,
            has_options=step.has_options_to_select,
            has_continue=step.has_continue_control,
            has_submit=step.has_final_submit_control,
        )
        rungs.append(rung.name if rung else "none")
        if rung is not None and rung.terminal:
            logger.info("customize.completed", steps=index)
            return CustomizeOutcome(completed=True, steps=index, rungs=rungs)

    final = False
    if queries.submit_control:
        final = bool(await actions.click_with_retry(queries.submit_control, retries=1, timeout_ms=RUNG_CLICK_TIMEOUT_MS))
        if final:
            await actions.pause(SUBMIT_SETTLE_MS)
    logger.warning("customize.budget_exhausted", max_steps=max_steps, final_attempt=final)
    return CustomizeOutcome(completed=False, steps=max_steps, rungs=rungs, final_attempt=final)
