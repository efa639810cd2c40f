"""
SiteStrategy: the per-site capability set used by the phase sequencer.

The automaton only calls authenticate / set_location / search /
add_to_cart / finalize and stays site-agnostic. Subclasses override the
steps whose markup or flow differs; the OTP wait is a shared tail of every
authenticate.

Methods return outcomes instead of raising for absence; the automaton
decides which phases are fatal.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from funnel.customize import CustomizeOutcome, WizardQueries, walk_wizard
from funnel.interaction.predicates import exists_any
from funnel.otp import synchronize_otp
from funnel.session import AuthMode, SessionState
from funnel.site_profiles import SiteProfile
from funnel.strategies.auth import BranchResult, SubmitStatus, signup_or_signin, submit_identifier
from shared.config import AppConfig
from shared.logging import get_logger

logger = get_logger(__name__)

CUSTOMIZATION_PROBE_MS = 2_000
OPENER_TIMEOUT_MS = 3_000
SEARCH_KEY_DELAY_MS = 70
LOCATION_KEY_DELAY_MS = 100

# First suggestion that is a real place, skipping "use current location" / "detect" rows.
PICK_LOCATION_SUGGESTION_JS = """
(selector) => {
  for (const el of Array.from(document.querySelectorAll(selector))) {
    const text = (el.textContent || '').toLowerCase();
    if (text.includes('current location') || text.includes('detect')) continue;
    if (text.trim().length > 5) { el.click(); return true; }
  }
  return false;
}
"""


class AuthStatus(str, Enum):
    AUTHENTICATED = "authenticated"
    TIMED_OUT = "timed_out"
    SKIPPED = "skipped"
    UNRESOLVED = "unresolved"


@dataclass
class AuthOutcome:
    status: AuthStatus
    challenge_seen: bool = False
    pivoted: bool = False
    detail: Optional[str] = None


class SiteStrategy(ABC):
    """Base strategy; profile selectors drive every default step."""

    name = "base"
    # Branch B (signup-or-signin) sites accept an auth-mode token on the command line.
    supports_account_creation = False
    dismiss_modals_before_auth = True
    dismiss_modals_before_search = True

    def __init__(self, profile: SiteProfile, config: AppConfig) -> None:
        self.profile = profile
        self.config = config

    # --- Authenticate ---

    async def open_auth(self, state: SessionState) -> bool:
        if self.dismiss_modals_before_auth and self.profile.has("close_modal"):
            await state.actions.close_modal_if_present(self.profile.query("close_modal"))
        if not self.profile.has("sign_in_button"):
            return False
        opened = await state.actions.click_with_retry(self.profile.query("sign_in_button"))
        if opened:
            await state.actions.pause(self.profile.timing.short_wait * 2)
            await state.capture("03_auth_modal")
        return bool(opened)

    async def submit_credentials(self, state: SessionState) -> BranchResult:
        if self.supports_account_creation:
            return await signup_or_signin(state, self.profile, state.auth_mode)
        return await submit_identifier(state, self.profile)

    async def authenticate(self, state: SessionState) -> AuthOutcome:
        if not await self.open_auth(state):
            logger.warning("auth.skipped", reason="sign-in control not found")
            return AuthOutcome(AuthStatus.SKIPPED, detail="sign-in control not found")

        branch = await self.submit_credentials(state)
        # No code was requested unless credentials went through; nothing to wait for.
        if branch.status is not SubmitStatus.SUBMITTED:
            logger.error("auth.unresolved", submit_status=branch.status.value, detail=branch.detail, action="skip_otp_wait")
            return AuthOutcome(AuthStatus.UNRESOLVED, pivoted=branch.pivoted, detail=branch.detail)

        async def _on_challenge() -> None:
            await state.capture("03_otp_screen")

        otp = await synchronize_otp(
            state.waiter,
            self.profile,
            appear_timeout_ms=self.config.otp_appear_timeout_ms,
            resolve_timeout_ms=self.config.otp_resolve_timeout_ms,
            on_challenge=_on_challenge,
        )
        status = AuthStatus.AUTHENTICATED if otp.authenticated else AuthStatus.TIMED_OUT
        return AuthOutcome(
            status,
            challenge_seen=otp.challenge_seen,
            pivoted=branch.pivoted,
            detail=branch.detail,
        )

    # --- SetLocation ---

    async def set_location(self, state: SessionState) -> bool:
        location = self.profile.default_location
        if not location or not self.profile.has("location_input"):
            logger.warning("location.not_configured")
            return False
        typed = await state.actions.type_into(
            self.profile.query("location_input"),
            location,
            clear_first=True,
            key_delay_ms=LOCATION_KEY_DELAY_MS,
        )
        if not typed:
            logger.warning("location.input_not_found")
            return False
        # Suggestions render asynchronously after typing.
        await state.actions.pause(self.profile.timing.element_wait)

        picked = False
        if self.profile.has("location_suggestion"):
            picked = bool(
                await state.active_context.evaluate_script(
                    PICK_LOCATION_SUGGESTION_JS, ", ".join(self.profile.query("location_suggestion"))
                )
            )
        if picked:
            logger.info("location.suggestion_clicked", location=location)
        else:
            logger.info("location.suggestion_fallback", action="press_enter")
            await state.actions.press("Enter")

        await state.actions.pause(self.profile.timing.page_load)
        await state.capture("02_location_set")
        await state.actions.press("Escape")
        await state.actions.pause(self.profile.timing.short_wait)
        return True

    # --- Search ---

    async def search(self, state: SessionState, term: str) -> bool:
        if self.dismiss_modals_before_search and self.profile.has("close_modal"):
            await state.actions.close_modal_if_present(self.profile.query("close_modal"))
        if self.profile.has("search_opener"):
            opened = await state.actions.click_with_retry(
                self.profile.query("search_opener"), retries=1, timeout_ms=OPENER_TIMEOUT_MS
            )
            logger.info("search.opener", clicked=bool(opened))
        if not self.profile.has("search_input"):
            logger.error("search.input_undefined")
            return False
        typed = await state.actions.type_into(
            self.profile.query("search_input"),
            term,
            clear_first=True,
            press_enter=True,
            key_delay_ms=SEARCH_KEY_DELAY_MS,
        )
        if not typed:
            logger.error("search.input_not_found")
            return False
        if self.profile.has("results_ready"):
            rendered = await state.waiter.appearance(
                exists_any(self.profile.query("results_ready")),
                self.profile.timing.long_wait,
                label="search_results",
            )
            if not rendered:
                logger.error("search.no_results", term=term)
                return False
        else:
            await state.actions.pause(self.profile.timing.page_load)
        await state.capture("04_search_results")
        return True

    # --- Customize ---

    async def customize(self, state: SessionState) -> CustomizeOutcome:
        """Walk the wizard when one is open; a missing wizard counts as completed."""
        if not self.profile.flags.has_customization:
            return CustomizeOutcome(completed=True, steps=0, skipped=True)
        queries = WizardQueries.from_profile(self.profile)
        present = await state.actions.element_exists(queries.container, CUSTOMIZATION_PROBE_MS)
        if not present and queries.submit_control:
            present = await state.actions.element_exists(queries.submit_control, CUSTOMIZATION_PROBE_MS)
        if not present:
            logger.info("customize.not_required")
            return CustomizeOutcome(completed=True, steps=0, skipped=True)

        await state.capture("05_customization")
        return await walk_wizard(
            state.actions,
            queries,
            max_steps=self.config.customization_max_steps,
        )

    # --- AddToCart / Finalize ---

    @abstractmethod
    async def add_to_cart(self, state: SessionState) -> bool:
        """Put one item into the cart; True only on positive confirmation."""

    async def confirm_in_cart(self, state: SessionState, fallback: bool) -> bool:
        """Positive cart-view signal when the profile has one, else the caller's click result."""
        if self.profile.has("cart_view"):
            seen = await state.waiter.appearance(
                exists_any(self.profile.query("cart_view")),
                self.profile.timing.long_wait,
                label="cart_view",
            )
            return seen.satisfied
        return fallback

    async def finalize(self, state: SessionState) -> bool:
        """Open the cart / checkout view."""
        name = "checkout_cta" if self.profile.has("checkout_cta") else "cart_link"
        if not self.profile.has(name):
            logger.warning("finalize.control_undefined")
            return False
        clicked = await state.actions.click_with_retry(self.profile.query(name))
        if not clicked:
            logger.warning("finalize.control_not_found", control=name)
            return False
        await state.actions.pause(self.profile.timing.page_load)
        await state.capture("07_checkout")
        return True

    def describe(self) -> dict:
        return {
            "strategy": self.name,
            "site": self.profile.site_id,
            "auth_branch": "signup_or_signin" if self.supports_account_creation else "identifier",
        }


def auth_mode_allowed(strategy: SiteStrategy, mode: AuthMode) -> bool:
    return mode is AuthMode.AUTO or strategy.supports_account_creation
