from __future__ import annotations
from typing import Any, Optional
from enum import Enum
from dataclasses import dataclass, field

from kubernetes.client.rest import ApiException  # type: ignore

from .base import BaseModel, translate_api_exception
from keymaster.log import logger


class PolicyKind(Enum):
    """Kinds of enforcement policy published per team."""

    TOKEN = "token"
    REQUEST = "request"


@dataclass(frozen=True)
class PolicyResource:
    """Custom resource coordinates of a policy kind."""

    group: str
    version: str
    plural: str
    kind: str
    resource_type: str  # value of the maas/resource-type label
    unit: str  # suffix of the limit entry name

    @property
    def api_version(self) -> str:
        return f"{self.group}/{self.version}"


POLICY_RESOURCES: dict[PolicyKind, PolicyResource] = {
    PolicyKind.TOKEN: PolicyResource(
        group="kuadrant.io",
        version="v1alpha1",
        plural="tokenratelimitpolicies",
        kind="TokenRateLimitPolicy",
        resource_type="team-rate-limit",
        unit="tokens",
    ),
    PolicyKind.REQUEST: PolicyResource(
        group="kuadrant.io",
        version="v1",
        plural="ratelimitpolicies",
        kind="RateLimitPolicy",
        resource_type="team-request-limit",
        unit="requests",
    ),
}


@dataclass
class RateLimitPolicy(BaseModel):
    """Model-style interface for the Kuadrant rate limit policy custom resources.

    One policy holds a single limit entry: a rate/window pair, a counter expression
    that decides what is counted, and a predicate that decides which requests apply.
    """

    name: str
    namespace: str
    kind: PolicyKind
    limit_name: str
    limit: int
    window: str
    predicate: str
    counter: str
    gateway_name: str
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)

    # Metadata attributes (populated from k8s data)
    uid: Optional[str] = None
    resource_version: Optional[str] = None

    @property
    def resource(self) -> PolicyResource:
        return POLICY_RESOURCES[self.kind]

    def to_manifest(self) -> dict[str, Any]:
        """Convert to the custom object body for API calls."""
        metadata: dict[str, Any] = {
            "name": self.name,
            "namespace": self.namespace,
            "labels": dict(self.labels),
            "annotations": dict(self.annotations),
        }
        if self.uid:
            metadata["uid"] = self.uid
        if self.resource_version:
            metadata["resourceVersion"] = self.resource_version

        return {
            "apiVersion": self.resource.api_version,
            "kind": self.resource.kind,
            "metadata": metadata,
            "spec": {
                "targetRef": {
                    "group": "gateway.networking.k8s.io",
                    "kind": "Gateway",
                    "name": self.gateway_name,
                },
                "limits": {
                    self.limit_name: {
                        "rates": [{"limit": self.limit, "window": self.window}],
                        "counters": [{"expression": self.counter}],
                        "when": [{"predicate": self.predicate}],
                    },
                },
            },
        }

    @classmethod
    def from_manifest(cls, kind: PolicyKind, data: dict[str, Any]) -> RateLimitPolicy:
        """Create a RateLimitPolicy from a custom object body."""
        metadata = data.get("metadata", {})
        spec = data.get("spec", {})
        limit_name, entry = next(iter(spec.get("limits", {}).items()), ("", {}))
        rate = (entry.get("rates") or [{}])[0]
        counter = (entry.get("counters") or [{}])[0]
        when = (entry.get("when") or [{}])[0]

        return cls(
            name=metadata.get("name", ""),
            namespace=metadata.get("namespace", ""),
            kind=kind,
            limit_name=limit_name,
            limit=rate.get("limit", 0),
            window=rate.get("window", ""),
            predicate=when.get("predicate", ""),
            counter=counter.get("expression", ""),
            gateway_name=spec.get("targetRef", {}).get("name", ""),
            labels=dict(metadata.get("labels") or {}),
            annotations=dict(metadata.get("annotations") or {}),
            uid=metadata.get("uid"),
            resource_version=metadata.get("resourceVersion"),
        )

    @classmethod
    def _coordinates(cls, kind: PolicyKind, namespace: str) -> dict[str, str]:
        resource = POLICY_RESOURCES[kind]
        return {
            "group": resource.group,
            "version": resource.version,
            "namespace": namespace,
            "plural": resource.plural,
        }

    @classmethod
    def get(cls, kind: PolicyKind, name: str, namespace: str) -> Optional[RateLimitPolicy]:
        """Get a policy by kind and name, or None if it doesn't exist."""
        try:
            data = cls.client.custom.get_namespaced_custom_object(name=name, **cls._coordinates(kind, namespace))
            return cls.from_manifest(kind, data)
        except ApiException as e:
            if e.status == 404:
                logger.debug(f"Get {POLICY_RESOURCES[kind].kind} {name} returned empty (status {e.status})")
                return None
            raise translate_api_exception(e, f"{POLICY_RESOURCES[kind].kind} {name}") from e

    @classmethod
    def filter(cls, kind: PolicyKind, namespace: str, **kwargs) -> list[RateLimitPolicy]:
        """Filter policies of a kind in the namespace."""
        try:
            result = cls.client.custom.list_namespaced_custom_object(**cls._coordinates(kind, namespace), **kwargs)
            return [cls.from_manifest(kind, item) for item in result.get("items", [])]
        except ApiException as e:
            logger.debug(f"Filter {POLICY_RESOURCES[kind].kind} failed (status {e.status})")
            raise translate_api_exception(e, f"{POLICY_RESOURCES[kind].kind} list") from e

    def create(self) -> RateLimitPolicy:
        """Create this policy; fails with ConflictError if the name is taken."""
        try:
            data = self.client.custom.create_namespaced_custom_object(
                body=self.to_manifest(),
                **self._coordinates(self.kind, self.namespace),
            )
            return self.from_manifest(self.kind, data)
        except ApiException as e:
            logger.debug(f"Create {self.resource.kind} {self.name} failed (status {e.status})")
            raise translate_api_exception(e, f"{self.resource.kind} {self.name}") from e

    def replace(self) -> RateLimitPolicy:
        """Replace the stored policy; requires the current uid and resource version."""
        try:
            data = self.client.custom.replace_namespaced_custom_object(
                name=self.name,
                body=self.to_manifest(),
                **self._coordinates(self.kind, self.namespace),
            )
            return self.from_manifest(self.kind, data)
        except ApiException as e:
            logger.debug(f"Replace {self.resource.kind} {self.name} failed (status {e.status})")
            raise translate_api_exception(e, f"{self.resource.kind} {self.name}") from e

    @classmethod
    def delete_by_name(cls, kind: PolicyKind, name: str, namespace: str) -> bool:
        """Delete a policy by name; returns False if it didn't exist."""
        try:
            cls.client.custom.delete_namespaced_custom_object(name=name, **cls._coordinates(kind, namespace))
            return True
        except ApiException as e:
            if e.status == 404:
                logger.debug(f"Delete {POLICY_RESOURCES[kind].kind} {name} failed (status {e.status})")
                return False
            raise translate_api_exception(e, f"{POLICY_RESOURCES[kind].kind} {name}") from e
