"""
Two-phase OTP synchronization.

The code itself is typed by a human; the automaton only watches the page.

Phase A waits for positive evidence that the challenge rendered (labelled
dialog text, a cluster of single-character inputs, or one-time-code
inputs), so success is never declared before the challenge exists.

Phase B waits until the challenge is gone AND an authenticated signal is
present (account area, no sign-in control, or account words in the
header), so a challenge that merely scrolled out of the polled container
does not count as success.

Both waits are bounded; a timed-out Phase A still runs Phase B.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from funnel.interaction.constants import DIALOG_CONTAINER
from funnel.interaction.predicates import (
    AttributeMatch,
    CountRange,
    Exists,
    Not,
    Predicate,
    TextMatch,
    any_of,
)
from funnel.interaction.waiter import ConditionWaiter, WaitOutcome
from funnel.site_profiles import SiteProfile
from shared.logging import get_logger

logger = get_logger(__name__)

OTP_LABEL_PATTERN = r"verify otp|didn['’]t receive otp"
OTP_PRESENCE_PATTERN = r"otp|verify"
OTP_AUTOCOMPLETE_PATTERN = r"one-time-code|otp"
SIGN_IN_CONTROL_PATTERN = r"\bsign\s*in\b"
SIGNED_IN_HEADER_PATTERN = r"account|profile|logout|sign out|my orders"
SINGLE_CHAR_INPUT = 'input[maxlength="1"]'
OTP_INPUT_CLUSTER = (4, 6)
CONTROL_ELEMENTS = "a, button, div, span"


def _joined(profile: SiteProfile, name: str, default: Optional[str] = None) -> Optional[str]:
    query = profile.selectors.get(name)
    if query:
        return ", ".join(query)
    return default


def challenge_appeared(profile: SiteProfile) -> Predicate:
    """Phase A: the OTP challenge has rendered inside the auth dialog."""
    scope = _joined(profile, "auth_dialog", DIALOG_CONTAINER)
    low, high = OTP_INPUT_CLUSTER
    return any_of(
        TextMatch(OTP_LABEL_PATTERN, scope=scope),
        CountRange(SINGLE_CHAR_INPUT, minimum=low, maximum=high, scope=scope),
        AttributeMatch("input", "autocomplete", OTP_AUTOCOMPLETE_PATTERN, scope=scope),
        AttributeMatch("input", "aria-label", OTP_AUTOCOMPLETE_PATTERN, scope=scope),
    )


def challenge_visible(profile: SiteProfile) -> Predicate:
    """Phase B trigger: anything that still looks like the challenge or the sign-in form."""
    scope = _joined(profile, "auth_dialog", DIALOG_CONTAINER)
    parts: list[Predicate] = [
        TextMatch(OTP_PRESENCE_PATTERN, scope=scope),
        Exists(SINGLE_CHAR_INPUT, scope=scope),
    ]
    sign_in_form = _joined(profile, "sign_in_form")
    if sign_in_form:
        parts.append(Exists(sign_in_form))
    return any_of(*parts)


def authenticated_signal(profile: SiteProfile) -> Predicate:
    """Phase B alternative: positive evidence of a signed-in page."""
    header = _joined(profile, "account_area", "header")
    parts: list[Predicate] = [
        Not(TextMatch(SIGN_IN_CONTROL_PATTERN, selector=CONTROL_ELEMENTS)),
        TextMatch(SIGNED_IN_HEADER_PATTERN, selector=header),
    ]
    if profile.has("sign_in_form") and profile.has("account_area"):
        # Sites with a dedicated sign-in form: account area once the form is gone.
        parts.append(Exists(header))
    return any_of(*parts)


@dataclass
class OtpOutcome:
    challenge_seen: bool
    authenticated: bool
    appear: WaitOutcome
    resolve: WaitOutcome


async def synchronize_otp(
    waiter: ConditionWaiter,
    profile: SiteProfile,
    *,
    appear_timeout_ms: int,
    resolve_timeout_ms: int,
    on_challenge: Optional[Callable[[], Awaitable[None]]] = None,
) -> OtpOutcome:
    """Run Phase A then Phase B; never raises on timeout."""
    appear = await waiter.appearance(challenge_appeared(profile), appear_timeout_ms, label="otp_challenge")
    if appear:
        logger.info("otp.challenge_detected", elapsed_ms=appear.elapsed_ms)
        if on_challenge is not None:
            await on_challenge()
    else:
        logger.warning("otp.challenge_not_seen", timeout_ms=appear_timeout_ms)

    logger.warning(
        "otp.awaiting_manual_entry",
        timeout_ms=resolve_timeout_ms,
        instructions="Enter the OTP sent to your phone in the browser window",
    )
    resolve = await waiter.absence_with_alternative(
        challenge_visible(profile),
        authenticated_signal(profile),
        resolve_timeout_ms,
        label="otp_resolution",
    )
    if resolve:
        logger.info("otp.resolved", elapsed_ms=resolve.elapsed_ms)
    else:
        logger.warning("otp.resolution_timeout", timeout_ms=resolve_timeout_ms)
    return OtpOutcome(
        challenge_seen=appear.satisfied,
        authenticated=resolve.satisfied,
        appear=appear,
        resolve=resolve,
    )
