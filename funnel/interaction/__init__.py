"""
Interaction layer: Playwright driver, resilient actions, condition waits, handoff.

Nothing in this package knows about phases or sites. Public API is
re-exported here so callers can `from funnel.interaction import ...`.
"""

from __future__ import annotations

from funnel.interaction.actions import ActionOutcome, ElementQuery, ResilientActions, as_query
from funnel.interaction.browser import create_browser_context, launch_browser
from funnel.interaction.driver import InteractionDriver
from funnel.interaction.handoff import HandoffOutcome, OneShotSlot, open_in_new_context
from funnel.interaction.navigation_retry import (
    NavigateResult,
    is_bot_block_page,
    navigate_with_retry,
)
from funnel.interaction.predicates import (
    AllOf,
    AnyOf,
    AttributeMatch,
    CountRange,
    Exists,
    Not,
    Predicate,
    TextMatch,
    all_of,
    any_of,
    exists_any,
)
from funnel.interaction.waiter import ConditionWaiter, WaitOutcome, WaitStatus

__all__ = [
    # actions
    "ActionOutcome",
    "ElementQuery",
    "ResilientActions",
    "as_query",
    # browser
    "create_browser_context",
    "launch_browser",
    # driver
    "InteractionDriver",
    # handoff
    "HandoffOutcome",
    "OneShotSlot",
    "open_in_new_context",
    # navigation_retry
    "NavigateResult",
    "is_bot_block_page",
    "navigate_with_retry",
    # predicates
    "AllOf",
    "AnyOf",
    "AttributeMatch",
    "CountRange",
    "Exists",
    "Not",
    "Predicate",
    "TextMatch",
    "all_of",
    "any_of",
    "exists_any",
    # waiter
    "ConditionWaiter",
    "WaitOutcome",
    "WaitStatus",
]
