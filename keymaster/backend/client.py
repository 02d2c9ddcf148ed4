from typing import Optional
from kubernetes import client, config  # type: ignore
from ..environment import KUBECONFIG_PATH, KUBERNETES_CONTEXT, KUBERNETES_IN_CLUSTER


_client_instance: Optional["Client"] = None


def get_client() -> "Client":
    """Get the singleton client instance, creating it if necessary."""
    global _client_instance

    if _client_instance is None:
        _client_instance = Client()
    return _client_instance


class Client:
    """Kubernetes client wrapper with configuration management."""

    _core: Optional[client.CoreV1Api] = None
    _custom: Optional[client.CustomObjectsApi] = None

    def __init__(self) -> None:
        """Initialize Kubernetes client with configuration."""

        try:
            if KUBERNETES_IN_CLUSTER:
                config.load_incluster_config()
            else:
                config.load_kube_config(
                    config_file=KUBECONFIG_PATH,
                    context=KUBERNETES_CONTEXT,
                )
        except config.ConfigException as e:
            raise RuntimeError(f"Failed to configure Kubernetes client: {e}") from e

    @property
    def core(self) -> client.CoreV1Api:
        """Get CoreV1Api client for core resources (secrets, configmaps, etc.)."""
        if self._core is None:
            self._core = client.CoreV1Api()
        return self._core

    @property
    def custom(self) -> client.CustomObjectsApi:
        """Get CustomObjectsApi client for the Kuadrant policy resources."""
        if self._custom is None:
            self._custom = client.CustomObjectsApi()
        return self._custom
