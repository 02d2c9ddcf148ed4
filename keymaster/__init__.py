from keymaster.config import (
    Tier,
    TierLimits,
    EffectiveLimits,
    LimitOverrides,
    UNLIMITED,
)
from keymaster.errors import (
    KeyManagerError,
    ValidationError,
    NotFoundError,
    ConflictError,
    NotAMemberError,
    PublishError,
    StoreError,
    CredentialGenerationError,
    TierConfigurationError,
    UnauthorizedError,
    PolicyManagementDisabledError,
)
from keymaster.limits import resolve_limits, get_effective_tier_limits
from keymaster.credentials import generate_credential, fingerprint
from keymaster.records import Team, Membership, APIKey, KeyStatus, Role
from keymaster.policy import PolicyPublisher
from keymaster.lifecycle import (
    LifecycleEngine,
    KeyUpdate,
    CreatedKey,
    get_engine,
)

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "Tier",
    "TierLimits",
    "EffectiveLimits",
    "LimitOverrides",
    "UNLIMITED",
    "KeyManagerError",
    "ValidationError",
    "NotFoundError",
    "ConflictError",
    "NotAMemberError",
    "PublishError",
    "StoreError",
    "CredentialGenerationError",
    "TierConfigurationError",
    "UnauthorizedError",
    "PolicyManagementDisabledError",
    "resolve_limits",
    "get_effective_tier_limits",
    "generate_credential",
    "fingerprint",
    "Team",
    "Membership",
    "APIKey",
    "KeyStatus",
    "Role",
    "PolicyPublisher",
    "LifecycleEngine",
    "KeyUpdate",
    "CreatedKey",
    "get_engine",
]
