"""Resolve a tier name plus optional overrides into concrete limits."""

from __future__ import annotations
from typing import Optional
from dataclasses import asdict

from keymaster.config import (
    EffectiveLimits,
    LimitOverrides,
    available_tiers,
    lookup_tier,
)
from keymaster.environment import DEFAULT_TIER, DEFAULT_TEAM_TIER
from keymaster.errors import TierConfigurationError
from keymaster.log import logger


def check_tier_configuration(default_tier: str = DEFAULT_TIER, default_team_tier: str = DEFAULT_TEAM_TIER) -> None:
    """Verify the configured fallback tiers exist; run once at startup."""
    for setting, tier in (("DEFAULT_TIER", default_tier), ("DEFAULT_TEAM_TIER", default_team_tier)):
        if lookup_tier(tier) is None:
            raise TierConfigurationError(
                f"{setting}={tier!r} is not a known tier. Available tiers: {', '.join(available_tiers())}"
            )


def resolve_limits(
    tier_name: str,
    overrides: Optional[LimitOverrides] = None,
    default_tier: str = DEFAULT_TIER,
) -> EffectiveLimits:
    """Resolve the effective limits for a tier.

    An empty tier name means the default tier. An unknown tier falls back to the
    default tier with a warning; the fallback happens at most once, so a default
    tier missing from the table raises TierConfigurationError instead of looping.

    Args:
        tier_name: Tier to resolve
        overrides: Explicit values replacing the tier defaults
        default_tier: Tier used for empty or unknown names

    Returns:
        EffectiveLimits with every field populated
    """
    if not tier_name:
        tier_name = default_tier

    defaults = lookup_tier(tier_name)
    if defaults is None:
        if tier_name == default_tier:
            raise TierConfigurationError(f"Default tier '{default_tier}' is not defined")
        logger.warning(f"Unknown tier '{tier_name}', falling back to default tier: {default_tier}")
        return resolve_limits(default_tier, overrides, default_tier=default_tier)

    values = asdict(defaults)
    values["tier"] = tier_name
    if overrides:
        values.update(_override_values(overrides))
    return EffectiveLimits(**values)


def _override_values(overrides: LimitOverrides) -> dict:
    """Collect the fields an override set actually replaces."""
    values: dict = {}
    # 0 means "inherit"; -1 and positive numbers replace the default
    if overrides.token_limit:
        values["token_limit"] = overrides.token_limit
    if overrides.request_limit:
        values["request_limit"] = overrides.request_limit
    if overrides.time_window:
        values["token_window"] = overrides.time_window
        values["request_window"] = overrides.time_window
    if overrides.token_window:
        values["token_window"] = overrides.token_window
    if overrides.request_window:
        values["request_window"] = overrides.request_window
    if overrides.models:
        values["models_allowed"] = tuple(overrides.models)
    return values


def get_effective_tier_limits(tier_name: str) -> EffectiveLimits:
    """Limits of a tier with no overrides applied."""
    return resolve_limits(tier_name)
