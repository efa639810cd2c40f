"""
Site strategies and the registry that picks one per profile.

The strategy is chosen once from SiteProfile.strategy; unknown keys fall
back to the generic strategy.
"""

from __future__ import annotations

from funnel.site_profiles import SiteProfile
from funnel.strategies.base import AuthOutcome, AuthStatus, SiteStrategy, auth_mode_allowed
from funnel.strategies.generic import GenericStrategy
from funnel.strategies.lenskart import LenskartStrategy
from funnel.strategies.swiggy import SwiggyStrategy
from shared.config import AppConfig
from shared.logging import get_logger

logger = get_logger(__name__)

STRATEGIES: dict[str, type[SiteStrategy]] = {
    GenericStrategy.name: GenericStrategy,
    LenskartStrategy.name: LenskartStrategy,
    SwiggyStrategy.name: SwiggyStrategy,
}


def select_strategy(profile: SiteProfile, config: AppConfig) -> SiteStrategy:
    cls = STRATEGIES.get(profile.strategy)
    if cls is None:
        logger.warning("strategy.unknown", strategy=profile.strategy, fallback=GenericStrategy.name)
        cls = GenericStrategy
    return cls(profile, config)


__all__ = [
    "AuthOutcome",
    "AuthStatus",
    "GenericStrategy",
    "LenskartStrategy",
    "STRATEGIES",
    "SiteStrategy",
    "SwiggyStrategy",
    "auth_mode_allowed",
    "select_strategy",
]
