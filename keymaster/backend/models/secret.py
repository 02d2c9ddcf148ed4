from __future__ import annotations
from typing import Optional
from dataclasses import dataclass, field

from kubernetes import client as k8s  # type: ignore
from kubernetes.client.rest import ApiException  # type: ignore

from .base import BaseModel, translate_api_exception
from keymaster.log import logger


@dataclass
class Secret(BaseModel):
    """Model-style interface for Kubernetes Secrets.

    Secrets are the persistence substrate for team configs and api keys: identity
    lives in the name, indexed attributes in labels, free text in annotations.
    """

    # Configuration attributes (required)
    name: str
    namespace: str

    # Optional configuration attributes
    secret_type: str = "Opaque"
    string_data: dict[str, str] = field(default_factory=dict)  # Kubernetes handles encoding
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)

    # Metadata attributes (populated from k8s data)
    uid: Optional[str] = None
    resource_version: Optional[str] = None
    creation_timestamp: Optional[str] = None

    def to_k8s_secret(self) -> k8s.V1Secret:
        """Convert to Kubernetes V1Secret object for API calls."""
        return k8s.V1Secret(
            api_version="v1",
            kind="Secret",
            metadata=k8s.V1ObjectMeta(
                name=self.name,
                namespace=self.namespace,
                labels=dict(self.labels),
                annotations=dict(self.annotations),
            ),
            type=self.secret_type,
            string_data=self.string_data if self.string_data else None,
        )

    @classmethod
    def from_k8s_data(cls, data: k8s.V1Secret) -> Secret:
        """Create a Secret instance from Kubernetes API data."""
        return cls(
            name=data.metadata.name,
            namespace=data.metadata.namespace,
            secret_type=data.type or "Opaque",
            string_data={},  # Don't expose the raw data for security
            labels=dict(data.metadata.labels or {}),
            annotations=dict(data.metadata.annotations or {}),
            uid=data.metadata.uid,
            resource_version=data.metadata.resource_version,
            creation_timestamp=str(data.metadata.creation_timestamp) if data.metadata.creation_timestamp else None,
        )

    @classmethod
    def get(cls, name: str, namespace: str) -> Optional[Secret]:
        """Get a Secret by name, or None if it doesn't exist."""
        try:
            k8s_secret = cls.client.core.read_namespaced_secret(name=name, namespace=namespace)
            return cls.from_k8s_data(k8s_secret)
        except ApiException as e:
            if e.status == 404:
                logger.debug(f"Get Secret {name} returned empty (status {e.status})")
                return None
            raise translate_api_exception(e, f"Secret {name}") from e

    @classmethod
    def filter(cls, namespace: str, **kwargs) -> list[Secret]:
        """Filter Secrets in the namespace."""
        try:
            result = cls.client.core.list_namespaced_secret(namespace=namespace, **kwargs)
            return [cls.from_k8s_data(item) for item in result.items]
        except ApiException as e:
            logger.debug(f"Filter Secrets failed (status {e.status})")
            raise translate_api_exception(e, "Secret list") from e

    def create(self) -> Secret:
        """Create this Secret in the cluster; fails with ConflictError if the name is taken."""
        try:
            k8s_secret = self.client.core.create_namespaced_secret(
                body=self.to_k8s_secret(),
                namespace=self.namespace,
            )
            return self.from_k8s_data(k8s_secret)
        except ApiException as e:
            logger.debug(f"Create Secret {self.name} failed (status {e.status})")
            raise translate_api_exception(e, f"Secret {self.name}") from e

    def update(self) -> Secret:
        """Write labels and annotations back, guarded by the resource version we read.

        Only metadata is patched so the stored secret data is left untouched.
        """
        body = {
            "metadata": {
                "labels": dict(self.labels),
                "annotations": dict(self.annotations),
                "resourceVersion": self.resource_version,
            }
        }
        try:
            k8s_secret = self.client.core.patch_namespaced_secret(
                name=self.name,
                namespace=self.namespace,
                body=body,
            )
            return self.from_k8s_data(k8s_secret)
        except ApiException as e:
            logger.debug(f"Update Secret {self.name} failed (status {e.status})")
            raise translate_api_exception(e, f"Secret {self.name}") from e

    def delete(self) -> bool:
        """Delete this Secret."""
        return self.delete_by_name(self.name, self.namespace)

    @classmethod
    def delete_by_name(cls, name: str, namespace: str) -> bool:
        """Delete a Secret by name; returns False if it didn't exist."""
        try:
            cls.client.core.delete_namespaced_secret(name=name, namespace=namespace)
            return True
        except ApiException as e:
            if e.status == 404:
                logger.debug(f"Delete Secret {name} failed (status {e.status})")
                return False
            raise translate_api_exception(e, f"Secret {name}") from e

    @classmethod
    def delete_collection(cls, namespace: str, label_selector: str) -> None:
        """Delete every Secret matching a label selector."""
        try:
            cls.client.core.delete_collection_namespaced_secret(
                namespace=namespace,
                label_selector=label_selector,
            )
        except ApiException as e:
            logger.debug(f"Delete Secret collection {label_selector} failed (status {e.status})")
            raise translate_api_exception(e, "Secret collection") from e
