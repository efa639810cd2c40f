"""
Site profiles: per-site selectors, timing budgets, flags and credentials.

A profile is immutable once loaded. Selectors are Playwright selector
strings grouped into ElementQuery tuples (most specific first), except
the DOCUMENT_SELECTOR_KEYS entries, which are checked in the page and
must be plain CSS. Built-in profiles cover the two supported storefronts;
a JSON file (path argument or SITE_PROFILES_PATH) can add sites or
override fields of built-ins.

Credentials are never stored in code. They come from the profile file or
from environment variables named <SITE>_PHONE, <SITE>_EMAIL,
<SITE>_FIRST_NAME, <SITE>_LAST_NAME, <SITE>_NAME and <SITE>_PASSWORD, and
are typed verbatim.
"""

from __future__ import annotations

import json
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping, Optional, Union

from funnel.errors import UnknownSiteError
from funnel.interaction.actions import ElementQuery
from shared.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class Timing:
    """Timing budgets in milliseconds."""

    page_load: int = 5_000
    element_wait: int = 3_000
    short_wait: int = 1_000
    long_wait: int = 10_000


@dataclass(frozen=True)
class SiteFlags:
    requires_location: bool = False
    has_customization: bool = False


@dataclass(frozen=True)
class Credentials:
    phone: str = ""
    first_name: str = ""
    last_name: str = ""
    name: str = ""
    email: str = ""
    password: str = ""

    def __repr__(self) -> str:
        # Keep secrets out of logs and tracebacks.
        return f"Credentials(phone={'set' if self.phone else 'unset'}, email={'set' if self.email else 'unset'})"


@dataclass(frozen=True)
class SiteProfile:
    site_id: str
    name: str
    base_url: str
    selectors: Mapping[str, ElementQuery]
    timing: Timing = field(default_factory=Timing)
    flags: SiteFlags = field(default_factory=SiteFlags)
    credentials: Credentials = field(default_factory=Credentials)
    default_location: Optional[str] = None
    strategy: str = "generic"

    def query(self, name: str) -> ElementQuery:
        """ElementQuery for a logical name; KeyError when the profile lacks it."""
        return self.selectors[name]

    def has(self, name: str) -> bool:
        return bool(self.selectors.get(name))


_CREDENTIAL_FIELDS = ("phone", "first_name", "last_name", "name", "email", "password")

_BUILTIN_PROFILES: dict[str, dict[str, Any]] = {
    "lenskart": {
        "name": "Lenskart",
        "base_url": "https://www.lenskart.com",
        "strategy": "lenskart",
        "flags": {"requires_location": False, "has_customization": True},
        "selectors": {
            "sign_in_button": ['a[href*="customer/account"]', "text=Sign In"],
            "auth_dialog": ['[role="dialog"]'],
            "identifier_input": [
                'input[name="emailOrPhone"]',
                'input[placeholder*="Mobile" i]',
                'input[placeholder*="Email" i]',
            ],
            "identifier_submit": ["#remove-button"],
            "create_account_link": [
                '[role="button"][aria-label*="create account" i]',
                'button[aria-label*="create account" i]',
                'button:has-text("Create an Account")',
                'a:has-text("Create an Account")',
            ],
            "signup_form_marker": ['input[name="firstName"]'],
            "signup_first_name": ['input[name="firstName"]'],
            "signup_last_name": ['input[name="lastName"]'],
            "signup_phone": ['input[name="mobile"]'],
            "signup_email": ['input[name="email"]'],
            "signup_password": ['input[name="password"]'],
            "signup_submit": ["#remove-button"],
            "switch_to_sign_in": ['[role="button"][aria-label="Sign In"]', 'button:has-text("Sign In")'],
            "pivot_sign_in_submit": [
                'button[data-testid="button-testid"]:has-text("Sign In")',
                "#remove-button",
            ],
            "sign_in_form": ["#sign-in-form"],
            "account_area": [
                "#header-wrapper",
                'header[id="header"]',
                'button[aria-label*="User account menu" i]',
            ],
            "close_modal": [
                'button[aria-label="Close"]',
                'button:has-text("No thanks")',
                '[class*="close"]',
            ],
            "search_input": [
                "input#autocomplete-0-input",
                'input.aa-Input[placeholder*="What are you looking for" i]',
                'input[placeholder*="Search"]',
                'input[type="search"]',
            ],
            "results_ready": [
                'div[data-cy="plpCardContainerProductImage"]',
                'a[class*="sc-"][class*="eb-"]',
            ],
            "product_card": [
                "a.sc-23b7d3eb-7.gZcHRJ",
                ".sc-23b7d3eb-8.gUutuN a",
                'div[data-cy="plpCardContainerProductImage"]',
                'a[class*="sc-"][class*="eb-"]',
            ],
            "primary_action": ["#btn-primary"],
            "customize_dialog": ['[role="dialog"]'],
            "customize_option": [
                '[data-cy="PackageItemWrapper"][role="button"]',
                'div[id="package-card-wrapper"] h3',
                'div[id="package-card-wrapper"] [role="button"]',
            ],
            "customize_submit": ['button[data-cy="packageBtnContinue"]'],
            "cart_view": ['div[data-cy="cart-cta-desktop"]'],
            "checkout_cta": ['div[data-cy="cart-cta-desktop"]'],
        },
    },
    "swiggy": {
        "name": "Swiggy",
        "base_url": "https://www.swiggy.com",
        "strategy": "swiggy",
        "default_location": "Bangalore",
        "flags": {"requires_location": True, "has_customization": True},
        "selectors": {
            "sign_in_button": ['a:has-text("Sign in")', "text=Sign in"],
            "auth_dialog": ['[role="dialog"]', ".modal", '[class*="Modal"]'],
            "identifier_input": [
                'input[placeholder*="Phone"]',
                'input[type="tel"]',
                "input#mobile",
                'input[name="mobile"]',
            ],
            "identifier_submit": [
                'form button:text-is("LOGIN")',
                'form a:text-is("LOGIN")',
                'form div:text-is("LOGIN")',
            ],
            "close_modal": ['button[aria-label="Close"]', '[class*="close"]'],
            "location_input": ['input[placeholder*="location" i]', 'input[placeholder*="Enter"]'],
            "location_suggestion": ['div[role="button"]'],
            "search_opener": [
                'div:text-is("Search for restaurant, item or more")',
                'span:text-is("Search for restaurant, item or more")',
                'a:has-text("Search")',
            ],
            "search_input": [
                'input[type="search"]',
                'input[placeholder*="Search" i]',
                'input[aria-label*="search" i]',
            ],
            "results_ready": [
                '[data-testid*="dish" i]',
                '[data-testid*="normal-dish" i]',
                '[data-testid*="grid" i]',
                'a[href*="/restaurants/"]',
            ],
            "add_button": [
                'button[class*="add-button-center-container" i]',
                'button:text-is("ADD")',
                'button:text-is("Add")',
                'button:has-text("ADD")',
            ],
            "restaurant_link": ['a[href*="/restaurants/"]', 'a[role="link"]:has-text("Restaurant")'],
            "details_add": ['[role="dialog"] button:text-is("ADD")', '[role="dialog"] button:text-is("Add")'],
            "customize_dialog": ['[role="dialog"]', ".modal", '[class*="Modal"]', "#customise-content"],
            "customize_continue": ['button[data-testid="menu-customize-continue-button"]'],
            "customize_submit": [
                'button[data-cy="customize-footer-add-button"]',
                'button:has-text("Add Item to cart")',
                'button:has-text("ADD ITEM")',
            ],
            "customize_option": ['input[type="radio"]'],
            "cart_count": ['a[href*="/checkout"] span'],
            "cart_link": [
                'a[href*="/checkout"]',
                'a[href*="/cart"]',
                'a:has-text("Cart")',
                'span:has-text("Cart")',
            ],
            "account_area": ["header", '[data-testid*="header" i]', '[class*="Header" i]'],
        },
    },
}

# Selectors read by the in-page predicate evaluator through querySelectorAll.
# These must be plain CSS; every other key is resolved by Playwright locators.
DOCUMENT_SELECTOR_KEYS = ("auth_dialog", "sign_in_form", "account_area", "results_ready", "cart_view")

_PLAYWRIGHT_ONLY_SYNTAX = re.compile(
    r"""^\s*(?:[a-z_-]+(?::[a-z_-]+)?=|//|\.\.|["'])"""
    r"|>>"
    r"|:(?:has-text|text|text-is|text-matches|visible|nth-match|left-of|right-of|above|below|near)\b",
    re.IGNORECASE,
)


def _check_document_selectors(site_id: str, selectors: Mapping[str, ElementQuery]) -> None:
    for key in DOCUMENT_SELECTOR_KEYS:
        for selector in selectors.get(key, ()):
            if _PLAYWRIGHT_ONLY_SYNTAX.search(selector):
                raise ValueError(
                    f"Site profile {site_id!r}: selector {selector!r} for {key!r} must be plain CSS "
                    "(Playwright text=, xpath, >> and :has-text() forms are not supported there)"
                )


def _as_query(value: Union[str, list, tuple]) -> ElementQuery:
    if isinstance(value, str):
        return (value,) if value else ()
    return tuple(str(v) for v in value if v)


def _credentials_from_env(site_id: str, base: Mapping[str, Any]) -> Credentials:
    prefix = site_id.upper().replace("-", "_")
    values: dict[str, str] = {}
    for name in _CREDENTIAL_FIELDS:
        env_value = os.getenv(f"{prefix}_{name.upper()}")
        values[name] = env_value if env_value is not None else str(base.get(name) or "")
    return Credentials(**values)


def build_site_profile(site_id: str, data: Mapping[str, Any]) -> SiteProfile:
    """Build an immutable SiteProfile from its dict form."""
    if not data.get("base_url"):
        raise ValueError(f"Site profile {site_id!r} has no base_url")
    selectors = {name: _as_query(value) for name, value in (data.get("selectors") or {}).items()}
    _check_document_selectors(site_id, selectors)
    flags = data.get("flags") or {}
    timing = data.get("timing") or {}
    return SiteProfile(
        site_id=site_id,
        name=data.get("name") or site_id,
        base_url=data["base_url"],
        selectors=MappingProxyType({k: v for k, v in selectors.items() if v}),
        timing=Timing(**{k: int(v) for k, v in timing.items() if k in Timing.__dataclass_fields__}),
        flags=SiteFlags(
            requires_location=bool(flags.get("requires_location", False)),
            has_customization=bool(flags.get("has_customization", False)),
        ),
        credentials=_credentials_from_env(site_id, data.get("credentials") or {}),
        default_location=data.get("default_location"),
        strategy=data.get("strategy") or "generic",
    )


def _merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = {**merged[key], **value}
        else:
            merged[key] = value
    return merged


def _read_profile_file(path: Union[str, Path]) -> dict[str, dict[str, Any]]:
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    sites = raw.get("sites", raw) if isinstance(raw, dict) else None
    if not isinstance(sites, dict):
        raise ValueError(f"Site profile file {path} must contain a mapping of site id to profile")
    return {str(k).lower(): v for k, v in sites.items()}


def available_sites(path: Optional[Union[str, Path]] = None) -> list[str]:
    """Site ids known from built-ins plus the optional profile file."""
    path = path or os.getenv("SITE_PROFILES_PATH") or None
    names = set(_BUILTIN_PROFILES)
    if path:
        names.update(_read_profile_file(path))
    return sorted(names)


def load_site_profile(site_id: str, path: Optional[Union[str, Path]] = None) -> SiteProfile:
    """
    Load one profile by id.

    Entries from the JSON file are merged over a built-in profile of the
    same id (section by section), or stand alone for new sites.
    """
    key = (site_id or "").strip().lower()
    path = path or os.getenv("SITE_PROFILES_PATH") or None
    file_profiles = _read_profile_file(path) if path else {}

    if key in file_profiles:
        data = _merge(_BUILTIN_PROFILES.get(key, {}), file_profiles[key])
        source = "file"
    elif key in _BUILTIN_PROFILES:
        data = _BUILTIN_PROFILES[key]
        source = "builtin"
    else:
        raise UnknownSiteError(site_id, set(_BUILTIN_PROFILES) | set(file_profiles))

    profile = build_site_profile(key, data)
    logger.info(
        "site_profile.loaded",
        site=key,
        source=source,
        strategy=profile.strategy,
        requires_location=profile.flags.requires_location,
        has_customization=profile.flags.has_customization,
    )
    return profile
