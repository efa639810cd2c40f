"""
Browser launch and context creation (viewport, UA, Accept-Language).
"""

from __future__ import annotations

from playwright.async_api import Browser, BrowserContext, Playwright

from funnel.interaction.constants import LAUNCH_ARGS, USER_AGENT, VIEWPORT
from shared.config import AppConfig


async def launch_browser(playwright: Playwright, config: AppConfig) -> Browser:
    """Launch Chromium; CHROME_PATH selects a local Chrome instead of the bundled build."""
    kwargs: dict = {"headless": config.headless, "args": list(LAUNCH_ARGS)}
    if config.chrome_path:
        kwargs["executable_path"] = config.chrome_path
    return await playwright.chromium.launch(**kwargs)


async def create_browser_context(browser: Browser, config: AppConfig) -> BrowserContext:
    """
    Create a browser context with a fixed desktop viewport.

    Stable UA and Accept-Language so the sites serve the same regional markup
    the selectors were written against.
    """
    context = await browser.new_context(
        viewport=dict(VIEWPORT),
        user_agent=USER_AGENT,
        extra_http_headers={"Accept-Language": config.accept_language},
    )
    return context
