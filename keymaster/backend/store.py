"""Label-indexed record store used in place of a database.

Teams and api keys are Secret records: a name, exact-match labels, free-text
annotations and an opaque payload. `SecretStore` keeps them in a Kubernetes
namespace; `MemoryEntityStore` keeps them in a dict and honours the same contract.
"""

from __future__ import annotations
from typing import Optional
from abc import ABC, abstractmethod
from dataclasses import replace
from itertools import count

from keymaster.backend.models.secret import Secret
from keymaster.errors import ConflictError, NotFoundError
from keymaster.labels import now, selector
from keymaster.log import logger


def matches(labels: dict[str, str], wanted: dict[str, str]) -> bool:
    """True when every selector label is present with the same value."""
    return all(labels.get(key) == value for key, value in wanted.items())


class EntityStore(ABC):
    """Create/read/update/delete and label-selector queries over Secret records."""

    namespace: str

    @abstractmethod
    def create(self, record: Secret) -> Secret:
        """Create a record; raises ConflictError if the name is taken."""
        ...

    @abstractmethod
    def get(self, name: str) -> Optional[Secret]:
        """Get a record by name, or None."""
        ...

    @abstractmethod
    def update(self, record: Secret) -> Secret:
        """Write back labels and annotations of a record read from this store.

        Raises NotFoundError if the record is gone and ConflictError if it changed
        since it was read.
        """
        ...

    @abstractmethod
    def delete(self, name: str) -> None:
        """Delete a record by name; raises NotFoundError if it doesn't exist."""
        ...

    @abstractmethod
    def list(self, labels: dict[str, str]) -> list[Secret]:
        """All records carrying every given label."""
        ...

    @abstractmethod
    def delete_collection(self, labels: dict[str, str]) -> int:
        """Delete all records carrying every given label; returns how many matched."""
        ...


class SecretStore(EntityStore):
    """Records kept as Secrets in a Kubernetes namespace."""

    def __init__(self, namespace: str):
        self.namespace = namespace

    def create(self, record: Secret) -> Secret:
        record.namespace = self.namespace
        return record.create()

    def get(self, name: str) -> Optional[Secret]:
        return Secret.get(name, self.namespace)

    def update(self, record: Secret) -> Secret:
        return record.update()

    def delete(self, name: str) -> None:
        if not Secret.delete_by_name(name, self.namespace):
            raise NotFoundError(f"Secret {name} not found")

    def list(self, labels: dict[str, str]) -> list[Secret]:
        return Secret.filter(self.namespace, label_selector=selector(labels))

    def delete_collection(self, labels: dict[str, str]) -> int:
        matched = self.list(labels)
        if matched:
            Secret.delete_collection(self.namespace, selector(labels))
        return len(matched)


class MemoryEntityStore(EntityStore):
    """In-process store with the same create/version semantics as the cluster."""

    def __init__(self, namespace: str = "memory"):
        self.namespace = namespace
        self.records: dict[str, Secret] = {}
        self._versions = count(1)

    def _public(self, record: Secret) -> Secret:
        # reads never return the secret payload, like the cluster store
        return replace(record, string_data={}, labels=dict(record.labels), annotations=dict(record.annotations))

    def create(self, record: Secret) -> Secret:
        if record.name in self.records:
            raise ConflictError(f"Secret {record.name} already exists or was modified concurrently")
        stored = replace(
            record,
            namespace=self.namespace,
            string_data=dict(record.string_data),
            labels=dict(record.labels),
            annotations=dict(record.annotations),
            uid=f"uid-{record.name}",
            resource_version=str(next(self._versions)),
            creation_timestamp=now(),
        )
        self.records[record.name] = stored
        return self._public(stored)

    def get(self, name: str) -> Optional[Secret]:
        stored = self.records.get(name)
        if stored is None:
            logger.debug(f"Get Secret {name} returned empty")
            return None
        return self._public(stored)

    def update(self, record: Secret) -> Secret:
        stored = self.records.get(record.name)
        if stored is None:
            raise NotFoundError(f"Secret {record.name} not found")
        if record.resource_version != stored.resource_version:
            raise ConflictError(f"Secret {record.name} already exists or was modified concurrently")
        stored = replace(
            stored,
            labels=dict(record.labels),
            annotations=dict(record.annotations),
            resource_version=str(next(self._versions)),
        )
        self.records[record.name] = stored
        return self._public(stored)

    def delete(self, name: str) -> None:
        if self.records.pop(name, None) is None:
            raise NotFoundError(f"Secret {name} not found")

    def list(self, labels: dict[str, str]) -> list[Secret]:
        return [self._public(record) for record in self.records.values() if matches(record.labels, labels)]

    def delete_collection(self, labels: dict[str, str]) -> int:
        names = [name for name, record in self.records.items() if matches(record.labels, labels)]
        for name in names:
            del self.records[name]
        return len(names)
