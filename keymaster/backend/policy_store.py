from __future__ import annotations
from typing import Optional
from abc import ABC, abstractmethod
import dataclasses
from itertools import count

from keymaster.backend.models.policy import PolicyKind, RateLimitPolicy
from keymaster.backend.store import matches
from keymaster.errors import ConflictError, NotFoundError
from keymaster.labels import selector


class PolicyStore(ABC):
    """Named enforcement policy objects, one namespace, two kinds."""

    namespace: str

    @abstractmethod
    def create(self, policy: RateLimitPolicy) -> RateLimitPolicy:
        """Create a policy; raises ConflictError if the name is taken."""
        ...

    @abstractmethod
    def get(self, kind: PolicyKind, name: str) -> Optional[RateLimitPolicy]:
        ...

    @abstractmethod
    def replace(self, policy: RateLimitPolicy) -> RateLimitPolicy:
        """Replace a policy carrying the current uid and resource version."""
        ...

    @abstractmethod
    def delete(self, kind: PolicyKind, name: str) -> None:
        """Delete a policy; raises NotFoundError if it doesn't exist."""
        ...

    @abstractmethod
    def list(self, kind: PolicyKind, labels: dict[str, str]) -> list[RateLimitPolicy]:
        ...


class KuadrantPolicyStore(PolicyStore):
    """Policies kept as Kuadrant custom resources."""

    def __init__(self, namespace: str):
        self.namespace = namespace

    def create(self, policy: RateLimitPolicy) -> RateLimitPolicy:
        policy.namespace = self.namespace
        return policy.create()

    def get(self, kind: PolicyKind, name: str) -> Optional[RateLimitPolicy]:
        return RateLimitPolicy.get(kind, name, self.namespace)

    def replace(self, policy: RateLimitPolicy) -> RateLimitPolicy:
        policy.namespace = self.namespace
        return policy.replace()

    def delete(self, kind: PolicyKind, name: str) -> None:
        if not RateLimitPolicy.delete_by_name(kind, name, self.namespace):
            raise NotFoundError(f"{kind.value} policy {name} not found")

    def list(self, kind: PolicyKind, labels: dict[str, str]) -> list[RateLimitPolicy]:
        return RateLimitPolicy.filter(kind, self.namespace, label_selector=selector(labels))


class MemoryPolicyStore(PolicyStore):
    """In-process policy store; `replace` checks uid and resource version like the API server."""

    def __init__(self, namespace: str = "memory"):
        self.namespace = namespace
        self.policies: dict[tuple[PolicyKind, str], RateLimitPolicy] = {}
        self._versions = count(1)

    def create(self, policy: RateLimitPolicy) -> RateLimitPolicy:
        key = (policy.kind, policy.name)
        if key in self.policies:
            raise ConflictError(f"{policy.kind.value} policy {policy.name} already exists")
        stored = dataclasses.replace(
            policy,
            namespace=self.namespace,
            uid=f"uid-{policy.kind.value}-{policy.name}",
            resource_version=str(next(self._versions)),
        )
        self.policies[key] = stored
        return dataclasses.replace(stored)

    def get(self, kind: PolicyKind, name: str) -> Optional[RateLimitPolicy]:
        stored = self.policies.get((kind, name))
        return dataclasses.replace(stored) if stored else None

    def replace(self, policy: RateLimitPolicy) -> RateLimitPolicy:
        key = (policy.kind, policy.name)
        stored = self.policies.get(key)
        if stored is None:
            raise NotFoundError(f"{policy.kind.value} policy {policy.name} not found")
        if policy.uid != stored.uid or policy.resource_version != stored.resource_version:
            raise ConflictError(f"{policy.kind.value} policy {policy.name} was modified concurrently")
        stored = dataclasses.replace(policy, namespace=self.namespace, resource_version=str(next(self._versions)))
        self.policies[key] = stored
        return dataclasses.replace(stored)

    def delete(self, kind: PolicyKind, name: str) -> None:
        if self.policies.pop((kind, name), None) is None:
            raise NotFoundError(f"{kind.value} policy {name} not found")

    def list(self, kind: PolicyKind, labels: dict[str, str]) -> list[RateLimitPolicy]:
        return [
            dataclasses.replace(policy)
            for (policy_kind, _), policy in self.policies.items()
            if policy_kind == kind and matches(policy.labels, labels)
        ]
