"""
Unit tests for the customization wizard ladder and step budget.
"""

from __future__ import annotations

import pytest

from funnel.customize import LADDER, CustomizationStep, WizardQueries, inspect_step, walk_wizard
from funnel.interaction.actions import ResilientActions

QUERIES = WizardQueries(
    container=('[role="dialog"]',),
    continue_control=("button.next",),
    submit_control=("button.add-item",),
    option=('input[type="radio"]',),
)
OPTION = '[role="dialog"] >> input[type="radio"]:not(:checked)'


def test_queries_from_profile(make_profile):
    """Wizard queries come from the profile and chain inside the container."""
    profile = make_profile(
        selectors={
            "customize_dialog": ["#customise", ".modal"],
            "customize_submit": ["button.add-item"],
            "customize_option": ["input[type=radio]", "input[type=checkbox]"],
        }
    )
    queries = WizardQueries.from_profile(profile)

    assert queries.scope == "#customise, .modal"
    assert queries.continue_control == ()
    assert queries.unselected_option == (
        "#customise, .modal >> input[type=radio]:not(:checked)",
        "#customise, .modal >> input[type=checkbox]:not(:checked)",
    )


def test_ladder_order():
    """The ladder runs continue, submit, option, label; only submit is terminal."""
    assert [r.name for r in LADDER] == ["continue", "submit", "select_option", "label_fallback"]
    assert [r.name for r in LADDER if r.terminal] == ["submit"]


@pytest.mark.asyncio
async def test_inspect_step_snapshot(make_driver, clock):
    """Inspection reports which controls the current screen offers."""
    driver = make_driver(visible=(OPTION, "button.add-item"))
    actions = ResilientActions(driver, sleep=clock.sleep)

    step = await inspect_step(actions, QUERIES)

    assert step == CustomizationStep(
        has_options_to_select=True, has_continue_control=False, has_final_submit_control=True
    )


@pytest.mark.asyncio
async def test_zero_step_wizard_submits_in_one_iteration(make_driver, clock):
    """A wizard with only a submit control finishes in one step."""
    driver = make_driver(visible=("button.add-item",))
    actions = ResilientActions(driver, sleep=clock.sleep)

    outcome = await walk_wizard(actions, QUERIES, max_steps=6)

    assert outcome.completed
    assert outcome.steps == 1
    assert outcome.rungs == ["submit"]
    assert driver.clicks == ["button.add-item"]


@pytest.mark.asyncio
async def test_three_selections_then_submit(make_driver, clock):
    """Options are picked one per step until submit appears."""
    driver = make_driver(visible=(OPTION,))
    picked = []

    def _pick(d):
        picked.append(True)
        if len(picked) == 3:
            d.hide(OPTION)
            d.show("button.add-item")

    driver.on_click[OPTION] = _pick
    actions = ResilientActions(driver, sleep=clock.sleep)

    outcome = await walk_wizard(actions, QUERIES, max_steps=6)

    assert outcome.completed
    assert outcome.steps == 4
    assert outcome.rungs == ["select_option"] * 3 + ["submit"]


@pytest.mark.asyncio
async def test_continue_preferred_over_options(make_driver, clock):
    """A continue control is used before selecting options."""
    driver = make_driver(visible=("button.next", OPTION))

    def _next(d):
        d.hide("button.next", OPTION)
        d.show("button.add-item")

    driver.on_click["button.next"] = _next
    actions = ResilientActions(driver, sleep=clock.sleep)

    outcome = await walk_wizard(actions, QUERIES)

    assert outcome.rungs == ["continue", "submit"]


@pytest.mark.asyncio
async def test_label_fallback_when_nothing_else_applies(make_driver, clock):
    """The label fallback is clicked when no other rung applies."""
    fallback = QUERIES.label_fallback[0]
    driver = make_driver(visible=(fallback,))
    driver.on_click[fallback] = lambda d: (d.hide(fallback), d.show("button.add-item"))
    actions = ResilientActions(driver, sleep=clock.sleep)

    outcome = await walk_wizard(actions, QUERIES)

    assert outcome.rungs == ["label_fallback", "submit"]
    assert outcome.completed


@pytest.mark.asyncio
async def test_budget_exhausted_makes_final_submit_attempt(make_driver, clock):
    """After the step budget a direct submit is attempted once."""
    driver = make_driver(visible=(OPTION,))
    picked = []

    def _pick(d):
        picked.append(True)
        if len(picked) == 2:
            d.show("button.add-item")

    driver.on_click[OPTION] = _pick
    actions = ResilientActions(driver, sleep=clock.sleep)

    outcome = await walk_wizard(actions, QUERIES, max_steps=2)

    assert outcome.completed is False
    assert outcome.steps == 2
    assert outcome.final_attempt is True
    assert driver.clicks == [OPTION, OPTION, "button.add-item"]


@pytest.mark.asyncio
async def test_budget_exhausted_with_nothing_clickable(make_driver, clock):
    """Nothing clickable: every step records none and no final click lands."""
    driver = make_driver()
    actions = ResilientActions(driver, sleep=clock.sleep)

    outcome = await walk_wizard(actions, QUERIES, max_steps=3)

    assert not outcome
    assert outcome.rungs == ["none"] * 3
    assert outcome.final_attempt is False
    assert driver.clicks == []
