"""
Authentication branches that run before the shared OTP wait.

Branch A (identifier only): type the identifier, submit, go to OTP wait.

Branch B (signup or signin): attempt the requested mode. When account
creation reports the identifier is already registered, pivot to sign-in
with the same identifier exactly once. A pivot that cannot be completed is
UNRESOLVED. Any result short of SUBMITTED ends Authenticate unresolved
without an OTP wait; success is never inferred.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from funnel.interaction.predicates import TextMatch
from funnel.session import AuthMode, SessionState
from funnel.site_profiles import SiteProfile
from shared.logging import get_logger

logger = get_logger(__name__)

AUTH_DIALOG_WAIT_MS = 5_000
SIGNUP_FORM_WAIT_MS = 3_000
ALREADY_REGISTERED_WAIT_MS = 1_500
SUBMIT_TIMEOUT_MS = 4_000
SUBMIT_SETTLE_MS = 1_500
ALREADY_REGISTERED_PATTERN = r"already registered|account already exists|mobile number already exists"

_SIGNUP_FIELDS = (
    ("signup_first_name", "first_name"),
    ("signup_last_name", "last_name"),
    ("signup_phone", "phone"),
    ("signup_email", "email"),
    ("signup_password", "password"),
)


class SubmitStatus(str, Enum):
    SUBMITTED = "submitted"
    NOT_SUBMITTED = "not_submitted"
    UNRESOLVED = "unresolved"


@dataclass
class BranchResult:
    status: SubmitStatus
    pivoted: bool = False
    detail: Optional[str] = None


def already_registered(profile: SiteProfile) -> TextMatch:
    scope = ", ".join(profile.selectors.get("auth_dialog") or ('[role="dialog"]',))
    return TextMatch(ALREADY_REGISTERED_PATTERN, scope=scope)


async def _type_identifier(state: SessionState, profile: SiteProfile) -> bool:
    if not profile.has("identifier_input"):
        logger.warning("auth.identifier_input_undefined")
        return False
    if not profile.credentials.phone:
        logger.warning("auth.identifier_missing", hint=f"set {profile.site_id.upper()}_PHONE")
        return False
    typed = await state.actions.type_into(
        profile.query("identifier_input"),
        profile.credentials.phone,
        clear_first=True,
        timeout_ms=profile.timing.element_wait,
        key_delay_ms=60,
    )
    return bool(typed)


async def _click(state: SessionState, profile: SiteProfile, name: str, *, retries: int = 1) -> bool:
    if not profile.has(name):
        return False
    outcome = await state.actions.click_with_retry(profile.query(name), retries=retries, timeout_ms=SUBMIT_TIMEOUT_MS)
    return bool(outcome)


async def submit_identifier(state: SessionState, profile: SiteProfile) -> BranchResult:
    """Branch A: single identifier field then submit (Enter when no submit control works)."""
    if not await _type_identifier(state, profile):
        logger.warning("auth.identifier_not_typed")
        return BranchResult(SubmitStatus.NOT_SUBMITTED, detail="identifier field not filled")
    if not await _click(state, profile, "identifier_submit"):
        logger.info("auth.submit_via_enter")
        await state.actions.press("Enter")
    await state.actions.pause(SUBMIT_SETTLE_MS)
    logger.info("auth.identifier_submitted")
    return BranchResult(SubmitStatus.SUBMITTED)


async def _fill_signup_form(state: SessionState, profile: SiteProfile) -> None:
    for selector_name, credential_field in _SIGNUP_FIELDS:
        value = getattr(profile.credentials, credential_field)
        if not value or not profile.has(selector_name):
            logger.debug("auth.signup_field_skipped", field=credential_field)
            continue
        await state.actions.type_into(
            profile.query(selector_name),
            value,
            clear_first=True,
            timeout_ms=profile.timing.element_wait,
            key_delay_ms=40,
        )


async def _open_signup_form(state: SessionState, profile: SiteProfile) -> bool:
    if not await _click(state, profile, "create_account_link", retries=2):
        logger.warning("auth.create_account_unavailable")
        return False
    if profile.has("signup_form_marker"):
        return await state.actions.element_exists(profile.query("signup_form_marker"), SIGNUP_FORM_WAIT_MS)
    return True


async def _pivot_to_sign_in(state: SessionState, profile: SiteProfile) -> BranchResult:
    """Single pivot from the signup form to sign-in with the same identifier."""
    logger.warning("auth.already_registered", action="pivot_to_signin")
    await state.capture("03_already_registered")
    if not await _click(state, profile, "switch_to_sign_in", retries=2):
        logger.error("auth.pivot_failed", reason="sign-in switch not found")
        return BranchResult(SubmitStatus.UNRESOLVED, pivoted=True, detail="sign-in switch not found after pivot")
    await state.actions.pause(SUBMIT_SETTLE_MS)
    if not await _type_identifier(state, profile):
        logger.error("auth.pivot_failed", reason="identifier not typed")
        return BranchResult(SubmitStatus.UNRESOLVED, pivoted=True, detail="identifier not typed after pivot")
    if not await _click(state, profile, "pivot_sign_in_submit"):
        logger.error("auth.pivot_failed", reason="sign-in submit not clickable")
        return BranchResult(SubmitStatus.UNRESOLVED, pivoted=True, detail="sign-in not submitted after pivot")
    await state.actions.pause(SUBMIT_SETTLE_MS)
    logger.info("auth.pivot_submitted")
    return BranchResult(SubmitStatus.SUBMITTED, pivoted=True)


async def _signup(state: SessionState, profile: SiteProfile) -> BranchResult:
    await state.capture("03_signup_form")
    await _fill_signup_form(state, profile)
    if not await _click(state, profile, "signup_submit"):
        logger.warning("auth.signup_submit_failed")
        return BranchResult(SubmitStatus.NOT_SUBMITTED, detail="signup submit not clickable")
    await state.actions.pause(SUBMIT_SETTLE_MS)
    registered = await state.waiter.appearance(
        already_registered(profile), ALREADY_REGISTERED_WAIT_MS, label="already_registered"
    )
    if registered:
        return await _pivot_to_sign_in(state, profile)
    logger.info("auth.signup_submitted")
    return BranchResult(SubmitStatus.SUBMITTED)


async def signup_or_signin(state: SessionState, profile: SiteProfile, mode: AuthMode) -> BranchResult:
    """Branch B: requested mode first; auto falls back from sign-in to account creation."""
    if profile.has("auth_dialog"):
        await state.actions.element_exists(profile.query("auth_dialog"), AUTH_DIALOG_WAIT_MS)

    if mode is AuthMode.SIGNUP:
        if await _open_signup_form(state, profile):
            return await _signup(state, profile)
        logger.warning("auth.signup_form_unavailable", mode=mode.value)
        return BranchResult(SubmitStatus.NOT_SUBMITTED, detail="signup form did not open")

    if await _type_identifier(state, profile) and await _click(state, profile, "identifier_submit"):
        await state.actions.pause(SUBMIT_SETTLE_MS)
        logger.info("auth.signin_submitted")
        return BranchResult(SubmitStatus.SUBMITTED)

    if mode is AuthMode.SIGNIN:
        logger.warning("auth.signin_unavailable", mode=mode.value)
        return BranchResult(SubmitStatus.NOT_SUBMITTED, detail="sign-in not submitted")

    logger.warning("auth.signin_unavailable", mode=mode.value, action="switch_to_create_account")
    if await _open_signup_form(state, profile):
        return await _signup(state, profile)
    return BranchResult(SubmitStatus.NOT_SUBMITTED, detail="neither sign-in nor signup available")
