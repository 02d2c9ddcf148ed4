from typing import Optional, TypeVar

from kubernetes.client.rest import ApiException  # type: ignore

from keymaster.backend.client import get_client
from keymaster.errors import ConflictError, KeyManagerError, NotFoundError, StoreError


class classproperty:
    """Descriptor for class properties."""

    def __init__(self, func):
        self.func = func

    def __get__(self, instance, owner):
        return self.func(owner)


T = TypeVar('T', bound='BaseModel')


def translate_api_exception(e: ApiException, description: str) -> KeyManagerError:
    """Map a Kubernetes API error onto the keymaster error taxonomy.

    The raw API body is never put into the message.
    """
    if e.status == 404:
        return NotFoundError(f"{description} not found")
    if e.status == 409:
        return ConflictError(f"{description} already exists or was modified concurrently")
    return StoreError(f"Store request for {description} failed")


class BaseModel:
    """Base model for Kubernetes resources."""

    @classproperty
    def client(cls):
        """Get the Kubernetes client instance."""
        return get_client()

    @classmethod
    def get(cls: type[T], name: str, namespace: str) -> Optional[T]:
        """Get a resource by name and namespace. Override in subclasses."""
        raise NotImplementedError(f"{cls.__name__} doesn't support get()")

    @classmethod
    def filter(cls: type[T], namespace: str, **kwargs) -> list[T]:
        """Filter resources in the namespace. Override in subclasses."""
        raise NotImplementedError(f"{cls.__name__} doesn't support filter()")
