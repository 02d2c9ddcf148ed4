from __future__ import annotations
from typing import Any, Optional
from enum import Enum
from dataclasses import dataclass, field, asdict
import re

from keymaster.errors import ValidationError


UNLIMITED = -1  # sentinel on any numeric limit
ALL_MODELS = "*"

_WINDOW = re.compile(r"^[1-9][0-9]*(ms|s|m|h|d)$")


def is_valid_window(value: str) -> bool:
    """Check a rate window such as `30s`, `1m`, `1h` or `24h`."""
    return bool(_WINDOW.match(value))


class Tier(Enum):
    """
    Named limit bundles a team can be assigned to.

    FREE: Trial access to the simulator model.
    STANDARD: Default tier for most teams.
    PREMIUM: Higher limits and access to premium models.
    UNLIMITED: No enforcement policies are published.
    """

    FREE = "free"
    STANDARD = "standard"
    PREMIUM = "premium"
    UNLIMITED = "unlimited"


@dataclass(frozen=True)
class TierLimits:
    """Default limits of a tier.

    `token_limit`/`request_limit` apply per `token_window`/`request_window` and are the
    values enforced by the gateway. The hourly/daily/concurrency figures are informational.
    """

    token_limit: int
    token_window: str
    request_limit: int
    request_window: str
    models_allowed: tuple[str, ...]
    token_limit_per_hour: int
    token_limit_per_day: int
    max_concurrent_requests: int


TIER_DEFINITIONS: dict[Tier, TierLimits] = {
    Tier.FREE: TierLimits(
        token_limit=2000,
        token_window="1m",
        request_limit=60,
        request_window="1m",
        models_allowed=("simulator-model",),
        token_limit_per_hour=10000,
        token_limit_per_day=50000,
        max_concurrent_requests=5,
    ),
    Tier.STANDARD: TierLimits(
        token_limit=10000,
        token_window="1m",
        request_limit=120,
        request_window="1m",
        models_allowed=("simulator-model", "qwen3-0-6b-instruct"),
        token_limit_per_hour=50000,
        token_limit_per_day=500000,
        max_concurrent_requests=10,
    ),
    Tier.PREMIUM: TierLimits(
        token_limit=50000,
        token_window="1m",
        request_limit=600,
        request_window="1m",
        models_allowed=("simulator-model", "qwen3-0-6b-instruct", "premium-models"),
        token_limit_per_hour=200000,
        token_limit_per_day=2000000,
        max_concurrent_requests=25,
    ),
    Tier.UNLIMITED: TierLimits(
        token_limit=UNLIMITED,
        token_window="1h",
        request_limit=UNLIMITED,
        request_window="1h",
        models_allowed=(ALL_MODELS,),
        token_limit_per_hour=UNLIMITED,
        token_limit_per_day=UNLIMITED,
        max_concurrent_requests=UNLIMITED,
    ),
}


@dataclass(frozen=True)
class Model:
    """A model served behind the gateway, listed in the OpenAI-compatible format."""

    id: str
    owned_by: str
    created: int = 1677610602

    def serialize(self) -> dict[str, Any]:
        return {"id": self.id, "object": "model", "created": self.created, "owned_by": self.owned_by}


MODEL_CATALOG: tuple[Model, ...] = (
    Model(id="qwen3-0-6b-instruct", owned_by="qwen3"),
    Model(id="simulator-model", owned_by="simulator"),
)


def lookup_tier(name: str) -> Optional[TierLimits]:
    """Get the default limits for a tier name, or None if the tier is unknown."""
    try:
        return TIER_DEFINITIONS[Tier(name)]
    except ValueError:
        return None


def available_tiers() -> list[str]:
    return [tier.value for tier in Tier]


@dataclass(frozen=True)
class EffectiveLimits(TierLimits):
    """Fully resolved limits: a tier's defaults with overrides applied."""

    tier: str

    @property
    def token_unlimited(self) -> bool:
        return self.token_limit == UNLIMITED

    @property
    def request_unlimited(self) -> bool:
        return self.request_limit == UNLIMITED

    def serialize(self) -> dict[str, Any]:
        data = asdict(self)
        data["models_allowed"] = list(self.models_allowed)
        return data


@dataclass
class LimitOverrides:
    """Explicit limits requested for a team or a key.

    `None`, `0` and empty strings mean "no override". `-1` requests unlimited.
    `time_window` applies to both kinds unless `token_window`/`request_window` is given.
    """

    token_limit: Optional[int] = None
    request_limit: Optional[int] = None
    time_window: Optional[str] = None
    token_window: Optional[str] = None
    request_window: Optional[str] = None
    models: list[str] = field(default_factory=list)

    def __post_init__(self):
        for name in ("token_limit", "request_limit"):
            value = getattr(self, name)
            if value is not None and value < UNLIMITED:
                raise ValidationError(f"{name} must be a positive number, 0 (inherit) or -1 (unlimited)")

        for name in ("time_window", "token_window", "request_window"):
            value = getattr(self, name)
            if value and not is_valid_window(value):
                raise ValidationError(f"{name} must look like 30s, 1m, 1h or 1d, got '{value}'")
