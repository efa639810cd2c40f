"""
Pytest configuration and fixtures for funnel tests.

Provides an in-memory stand-in for InteractionDriver (a set of visible
selectors, text per selector/scope, counters and click hooks), a fake
clock whose sleep advances time instantly, and builders for profiles,
configuration and session state. No browser or network required.
"""

from __future__ import annotations

import asyncio
import re
from typing import Any, Callable, Optional

import pytest
from playwright.async_api import Error as PlaywrightError

from funnel.diagnostics import DiagnosticsSink
from funnel.interaction.actions import ResilientActions
from funnel.interaction.handoff import OneShotSlot
from funnel.interaction.navigation_retry import NavigateResult
from funnel.interaction.predicates import (
    AllOf,
    AnyOf,
    AttributeMatch,
    CountRange,
    Exists,
    Not,
    TextMatch,
)
from funnel.interaction.waiter import ConditionWaiter
from funnel.session import AuthMode, SessionState
from funnel.site_profiles import SiteProfile, build_site_profile
from shared.config import AppConfig


class FakeClock:
    """Monotonic clock whose sleep advances time and fires scheduled events."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start
        self.sleeps: list[float] = []
        self._events: list[tuple[float, Callable[[], None]]] = []

    def __call__(self) -> float:
        return self.now

    def at(self, seconds: float, event: Callable[[], None]) -> None:
        self._events.append((seconds, event))
        self._events.sort(key=lambda item: item[0])

    def _fire_due(self) -> None:
        while self._events and self._events[0][0] <= self.now + 1e-9:
            _, event = self._events.pop(0)
            event()

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        self._fire_due()
        await asyncio.sleep(0)


class FakeHandle:
    def __init__(self, selector: str) -> None:
        self.selector = selector

    def __repr__(self) -> str:
        return f"FakeHandle({self.selector!r})"


class FakeDriver:
    """
    In-memory InteractionDriver.

    Predicates are evaluated against plain dicts: `visible` (selectors that
    resolve), `texts` (keyed by selector, scope, or None for the body),
    `counts` and `attributes` keyed by (selector, attribute). Scopes on
    Exists / CountRange / AttributeMatch are ignored.
    """

    def __init__(
        self,
        *,
        url: str = "https://shop.example/",
        visible: tuple[str, ...] = (),
        texts: Optional[dict[Optional[str], str]] = None,
    ) -> None:
        self.url = url
        self.visible: set[str] = set(visible)
        self.texts: dict[Optional[str], str] = dict(texts or {})
        self.counts: dict[str, int] = {}
        self.attributes: dict[tuple[str, str], str] = {}
        self.on_click: dict[str, Callable[["FakeDriver"], None]] = {}
        self.click_errors: dict[str, int] = {}
        self.evaluate_errors = 0
        self.script_handler: Optional[Callable[[str, Any], Any]] = None
        self.navigate_result = NavigateResult(success=True, response=None, error_summary=None, attempts=1)

        self.probes: list[tuple[str, int]] = []
        self.clicks: list[str] = []
        self.click_counts: list[int] = []
        self.typed: list[tuple[str, str]] = []
        self.pressed: list[str] = []
        self.evaluated: list[Any] = []
        self.scripts: list[tuple[str, Any]] = []
        self.scrolled: list[int] = []
        self.navigated: list[str] = []
        self.screenshots = 0
        self.closed = False
        self.listeners: list[OneShotSlot] = []

    # --- capability surface ---

    async def navigate(self, url: str, *, nav_timeout_ms: Optional[int] = None) -> NavigateResult:
        self.navigated.append(url)
        return self.navigate_result

    async def find_visible(self, selector: str, timeout_ms: int) -> Optional[FakeHandle]:
        self.probes.append((selector, timeout_ms))
        return FakeHandle(selector) if selector in self.visible else None

    async def click(self, handle: FakeHandle, *, click_count: int = 1, timeout_ms: int = 5_000) -> None:
        remaining = self.click_errors.get(handle.selector, 0)
        if remaining:
            self.click_errors[handle.selector] = remaining - 1
            raise PlaywrightError(f"Element is not attached: {handle.selector}")
        self.clicks.append(handle.selector)
        self.click_counts.append(click_count)
        hook = self.on_click.get(handle.selector)
        if hook is not None:
            hook(self)

    async def type(self, handle: FakeHandle, text: str, key_delay_ms: int) -> None:
        self.typed.append((handle.selector, text))

    async def press(self, key: str) -> None:
        self.pressed.append(key)

    async def current_text(self, handle: FakeHandle) -> str:
        return self.texts.get(handle.selector, "").strip()

    async def evaluate(self, predicate: Any) -> bool:
        self.evaluated.append(predicate)
        if self.evaluate_errors:
            self.evaluate_errors -= 1
            raise PlaywrightError("Execution context was destroyed")
        return self.holds(predicate)

    async def evaluate_script(self, script: str, arg: Any = None) -> Any:
        self.scripts.append((script, arg))
        if self.script_handler is None:
            return None
        return self.script_handler(script, arg)

    async def wait_for_load(self, state: str = "domcontentloaded", timeout_ms: int = 30_000) -> bool:
        return True

    async def scroll_by(self, dy: int) -> None:
        self.scrolled.append(dy)

    async def screenshot(self, *, full_page: bool = True) -> bytes:
        self.screenshots += 1
        return b"\x89PNG fake"

    def subscribe_once(self, event_kind: str = "page") -> OneShotSlot:
        slot: OneShotSlot = OneShotSlot(label=event_kind)
        self.listeners.append(slot)
        slot.on_close(lambda: self.listeners.remove(slot))
        return slot

    # --- test helpers ---

    def spawn(self, new_driver: "FakeDriver") -> None:
        """Emit a new-context event to every registered listener."""
        for slot in list(self.listeners):
            slot.offer(new_driver)

    def show(self, *selectors: str) -> None:
        self.visible.update(selectors)

    def hide(self, *selectors: str) -> None:
        self.visible.difference_update(selectors)

    def holds(self, predicate: Any) -> bool:
        if isinstance(predicate, Exists):
            return predicate.selector in self.visible or self.counts.get(predicate.selector, 0) > 0
        if isinstance(predicate, TextMatch):
            key = predicate.selector if predicate.selector else predicate.scope
            flags = re.IGNORECASE if predicate.ignore_case else 0
            return re.search(predicate.pattern, self.texts.get(key, ""), flags) is not None
        if isinstance(predicate, AttributeMatch):
            flags = re.IGNORECASE if predicate.ignore_case else 0
            value = self.attributes.get((predicate.selector, predicate.attribute), "")
            return bool(value) and re.search(predicate.pattern, value, flags) is not None
        if isinstance(predicate, CountRange):
            n = self.counts.get(predicate.selector, 0)
            return n >= predicate.minimum and (predicate.maximum is None or n <= predicate.maximum)
        if isinstance(predicate, Not):
            return not self.holds(predicate.operand)
        if isinstance(predicate, AllOf):
            return all(self.holds(op) for op in predicate.operands)
        if isinstance(predicate, AnyOf):
            return any(self.holds(op) for op in predicate.operands)
        raise TypeError(f"not a predicate: {predicate!r}")


SHOP_PROFILE: dict[str, Any] = {
    "name": "Shop",
    "base_url": "https://shop.example",
    "strategy": "generic",
    "timing": {"page_load": 500, "element_wait": 500, "short_wait": 100, "long_wait": 2_000},
    "credentials": {"phone": "9000000001"},
    "selectors": {
        "sign_in_button": ["a.sign-in"],
        "auth_dialog": ['[role="dialog"]'],
        "identifier_input": ["input#phone"],
        "identifier_submit": ["button.continue"],
        "search_input": ["input#q"],
        "results_ready": ["div.results"],
        "add_button": ["button.add"],
        "cart_link": ["a.cart"],
    },
}


def make_config(artifacts_dir: str = "./screenshots", **overrides: Any) -> AppConfig:
    values: dict[str, Any] = dict(
        environment="local",
        log_level="INFO",
        log_file=None,
        log_stdout=True,
        log_format="console",
        artifacts_dir=artifacts_dir,
        screenshots_enabled=True,
        headless=True,
        chrome_path=None,
        accept_language="en-IN,en;q=0.9",
        site_profiles_path=None,
        hold_open_seconds=0,
        otp_appear_timeout_ms=30_000,
        otp_resolve_timeout_ms=60_000,
        handoff_timeout_ms=500,
        customization_max_steps=6,
    )
    values.update(overrides)
    return AppConfig(**values)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def config(tmp_path) -> AppConfig:
    return make_config(str(tmp_path / "shots"))


@pytest.fixture
def make_driver() -> Callable[..., FakeDriver]:
    return FakeDriver


@pytest.fixture
def make_profile(monkeypatch) -> Callable[..., SiteProfile]:
    """Build a profile from SHOP_PROFILE with section-wise overrides."""

    for name in ("PHONE", "EMAIL", "FIRST_NAME", "LAST_NAME", "NAME", "PASSWORD"):
        monkeypatch.delenv(f"SHOP_{name}", raising=False)

    def _make(site_id: str = "shop", **overrides: Any) -> SiteProfile:
        data = dict(SHOP_PROFILE)
        for key, value in overrides.items():
            if isinstance(value, dict) and isinstance(data.get(key), dict):
                data[key] = {**data[key], **value}
            else:
                data[key] = value
        return build_site_profile(site_id, data)

    return _make


@pytest.fixture
def make_state(clock, config) -> Callable[..., SessionState]:
    def _make(
        driver: FakeDriver,
        *,
        site_id: str = "shop",
        auth_mode: AuthMode = AuthMode.AUTO,
        diagnostics: bool = False,
    ) -> SessionState:
        return SessionState(
            site_id=site_id,
            auth_mode=auth_mode,
            active_context=driver,  # type: ignore[arg-type]
            actions=ResilientActions(driver, sleep=clock.sleep),  # type: ignore[arg-type]
            waiter=ConditionWaiter(driver, clock=clock, sleep=clock.sleep),  # type: ignore[arg-type]
            diagnostics=DiagnosticsSink(config, site_id, "test-session") if diagnostics else None,
        )

    return _make
