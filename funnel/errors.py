"""
Exception taxonomy for the funnel automation.

Absence of an element or condition is an expected outcome and is never
raised. Exceptions are reserved for programmer error, fatal phase failure,
and configuration lookups.
"""

from __future__ import annotations

from typing import Iterable


class FunnelError(Exception):
    """Base class for funnel automation errors."""


class NotFound(FunnelError, LookupError):
    """No selector of an ElementQuery resolved to a visible element."""

    def __init__(self, selectors: Iterable[str]) -> None:
        self.selectors = tuple(selectors)
        super().__init__(f"None of the selectors found: {', '.join(self.selectors)}")


class PhaseFailed(FunnelError):
    """A critical phase exhausted its strategies; aborts the session."""

    def __init__(self, phase: str, reason: str) -> None:
        self.phase = phase
        self.reason = reason
        super().__init__(f"{phase} failed: {reason}")


class UnknownSiteError(FunnelError, KeyError):
    """Requested site has no profile."""

    def __init__(self, site_id: str, available: Iterable[str]) -> None:
        self.site_id = site_id
        self.available = tuple(sorted(available))
        super().__init__(site_id)

    def __str__(self) -> str:
        return f'Site "{self.site_id}" not supported. Available: {", ".join(self.available)}'


class HandoffError(FunnelError):
    """Misuse of the cross-context handoff protocol."""
