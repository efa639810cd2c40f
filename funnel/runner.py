"""
Browser lifecycle around one automaton run.

Launches Chromium, creates the context and first page, runs the session
automaton, keeps the window open for inspection after a successful run,
and always closes the browser.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional, Union
from uuid import uuid4

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

from funnel.automaton import SessionAutomaton
from funnel.diagnostics import DiagnosticsSink
from funnel.interaction.actions import ResilientActions
from funnel.interaction.browser import create_browser_context, launch_browser
from funnel.interaction.driver import InteractionDriver
from funnel.interaction.waiter import ConditionWaiter
from funnel.session import AuthMode, Phase, PhaseOutcome, PhaseRecord, RunResult, SessionState
from funnel.site_profiles import SiteProfile, load_site_profile
from funnel.strategies import select_strategy
from shared.config import AppConfig
from shared.logging import bind_request_context, clear_request_context, get_logger

logger = get_logger(__name__)


def build_session_state(
    driver: InteractionDriver,
    profile: SiteProfile,
    config: AppConfig,
    *,
    auth_mode: AuthMode,
    session_id: str,
) -> SessionState:
    return SessionState(
        site_id=profile.site_id,
        auth_mode=auth_mode,
        active_context=driver,
        actions=ResilientActions(driver),
        waiter=ConditionWaiter(driver),
        diagnostics=DiagnosticsSink(config, profile.site_id, session_id),
    )


async def run_session(
    site_id: str,
    search_term: str,
    config: AppConfig,
    *,
    auth_mode: AuthMode = AuthMode.AUTO,
    profiles_path: Optional[Union[str, Path]] = None,
) -> RunResult:
    """Load the profile, drive one browser session, return its result."""
    profile = load_site_profile(site_id, profiles_path or config.site_profiles_path)
    strategy = select_strategy(profile, config)
    session_id = str(uuid4())
    bind_request_context(
        session_id=session_id,
        site=profile.site_id,
        auth_mode=auth_mode.value,
        search_term=search_term,
    )
    logger.info("runner.start", headless=config.headless, **strategy.describe())
    try:
        async with async_playwright() as playwright:
            try:
                browser = await launch_browser(playwright, config)
            except PlaywrightError as e:
                logger.error("runner.launch_failed", error=str(e))
                return RunResult(
                    success=False,
                    history=[PhaseRecord(Phase.INIT, PhaseOutcome.FAILED, f"browser launch failed: {e}")],
                    failed_phase=Phase.INIT,
                    error=str(e),
                )
            try:
                context = await create_browser_context(browser, config)
                page = await context.new_page()
                state = build_session_state(
                    InteractionDriver(page),
                    profile,
                    config,
                    auth_mode=auth_mode,
                    session_id=session_id,
                )
                result = await SessionAutomaton(profile, strategy, state, config).run(search_term)
                if result.success and config.hold_open_seconds > 0:
                    logger.info("runner.hold_open", seconds=config.hold_open_seconds)
                    await asyncio.sleep(config.hold_open_seconds)
                if state.diagnostics is not None:
                    logger.info(
                        "runner.artifacts",
                        artifacts_dir=config.artifacts_dir,
                        captures=len(state.diagnostics.captured),
                    )
                return result
            finally:
                await browser.close()
                logger.info("runner.browser_closed")
    finally:
        clear_request_context()
