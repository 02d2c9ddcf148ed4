from .client import get_client
from .models.base import BaseModel
from .models.policy import PolicyKind, RateLimitPolicy
from .models.secret import Secret
from .store import EntityStore, SecretStore, MemoryEntityStore
from .policy_store import PolicyStore, KuadrantPolicyStore, MemoryPolicyStore

__all__ = [
    "get_client",
    "BaseModel",
    "PolicyKind",
    "RateLimitPolicy",
    "Secret",
    "EntityStore",
    "SecretStore",
    "MemoryEntityStore",
    "PolicyStore",
    "KuadrantPolicyStore",
    "MemoryPolicyStore",
]
