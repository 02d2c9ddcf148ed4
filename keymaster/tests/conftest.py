"""
Pytest configuration and fixtures for the keymaster tests.

Engine tests run against the in-memory stores; model tests mock the Kubernetes
client the way `test_secret.py` does.
"""

import pytest

from keymaster.backend.store import MemoryEntityStore
from keymaster.backend.policy_store import MemoryPolicyStore
from keymaster.lifecycle import LifecycleEngine
from keymaster.policy import PolicyPublisher


@pytest.fixture
def entity_store():
    return MemoryEntityStore()


@pytest.fixture
def policy_store():
    return MemoryPolicyStore()


@pytest.fixture
def publisher(policy_store):
    return PolicyPublisher(policy_store, gateway_name="test-gateway")


@pytest.fixture
def engine(entity_store, publisher):
    """Engine wired to in-memory stores with default tier settings."""
    return LifecycleEngine(entity_store, publisher, default_tier="standard", default_team_tier="standard")


@pytest.fixture
def owner_key(engine):
    """A standard-tier team with an owner key."""
    engine.create_team("t1", "Team One", tier="standard")
    return engine.create_api_key("t1", "alice")


@pytest.fixture
def mock_secret_data():
    """Mock Secret data for testing."""
    from unittest.mock import Mock
    from kubernetes import client as k8s

    mock_secret = Mock(spec=k8s.V1Secret)
    mock_secret.metadata = Mock()
    mock_secret.metadata.name = "team-t1-config"
    mock_secret.metadata.namespace = "llm"
    mock_secret.metadata.labels = {"maas/resource-type": "team-config", "maas/team-id": "t1"}
    mock_secret.metadata.annotations = {"maas/team-name": "Team One"}
    mock_secret.metadata.uid = "0b9f3c52"
    mock_secret.metadata.resource_version = "41"
    mock_secret.metadata.creation_timestamp = None
    mock_secret.data = {"team_id": "dDE="}  # base64 encoded
    mock_secret.type = "Opaque"

    return mock_secret
