"""Translate effective limits into gateway enforcement policies.

Policies are derived state: everything in them is recomputed from the team record
and the tier table, so publishing is always an upsert and retracting is best-effort.
"""

from __future__ import annotations
from typing import Optional

from keymaster import labels
from keymaster.backend.models.policy import POLICY_RESOURCES, PolicyKind, RateLimitPolicy
from keymaster.backend.policy_store import PolicyStore
from keymaster.config import EffectiveLimits
from keymaster.environment import DEFAULT_TEAM_ID, GATEWAY_NAME
from keymaster.errors import ConflictError, KeyManagerError, NotFoundError, PublishError
from keymaster.log import logger


USER_COUNTER = "auth.identity.userid"


def team_predicate(team_id: str) -> str:
    """CEL predicate matching requests authenticated with a key of the team."""
    return f'has(auth.identity.metadata.labels) && auth.identity.metadata.labels["{labels.TEAM_ID}"] == "{team_id}"'


def team_counter() -> str:
    """CEL expression counting all of a team's requests against one budget."""
    return f'auth.identity.metadata.labels["{labels.TEAM_ID}"]'


def rate_for(kind: PolicyKind, limits: EffectiveLimits) -> tuple[int, str]:
    if kind == PolicyKind.TOKEN:
        return limits.token_limit, limits.token_window
    return limits.request_limit, limits.request_window


class PolicyPublisher:
    """Publish and retract the token and request policies of a team."""

    def __init__(
        self,
        store: PolicyStore,
        gateway_name: str = GATEWAY_NAME,
        default_team_id: str = DEFAULT_TEAM_ID,
    ):
        self.store = store
        self.gateway_name = gateway_name
        self.default_team_id = default_team_id

    def build(
        self,
        team_id: str,
        kind: PolicyKind,
        limits: EffectiveLimits,
        aggregate: bool = False,
    ) -> RateLimitPolicy:
        """Build the enforcement object for one team and limit kind."""
        resource = POLICY_RESOURCES[kind]
        limit, window = rate_for(kind, limits)
        return RateLimitPolicy(
            name=labels.policy_name(team_id, kind.value),
            namespace=self.store.namespace,
            kind=kind,
            limit_name=f"team-{team_id}-{resource.unit}",
            limit=limit,
            window=window,
            predicate=team_predicate(team_id),
            counter=team_counter() if aggregate else USER_COUNTER,
            gateway_name=self.gateway_name,
            labels={
                labels.MANAGED_BY: labels.MANAGER_NAME,
                labels.TEAM_ID: team_id,
                labels.RESOURCE_TYPE: resource.resource_type,
            },
            annotations={
                labels.CREATED_AT: labels.now(),
                labels.DESCRIPTION: f"{resource.kind} for team {team_id} ({limits.tier} tier)",
            },
        )

    def should_publish(self, team_id: str, kind: PolicyKind, limits: EffectiveLimits) -> bool:
        """Unlimited limits and the default team rely on the catch-all policy instead."""
        unlimited = limits.token_unlimited if kind == PolicyKind.TOKEN else limits.request_unlimited
        if unlimited:
            logger.info(f"Team {team_id} has unlimited {kind.value} limits - no {kind.value} policy needed")
            return False
        if team_id == self.default_team_id:
            logger.info(f"Skipping {kind.value} policy for default team - using default unlimited policy")
            return False
        return True

    def publish(
        self,
        team_id: str,
        kind: PolicyKind,
        limits: EffectiveLimits,
        aggregate: bool = False,
    ) -> Optional[RateLimitPolicy]:
        """Create or update the policy of one kind for a team.

        Returns:
            The stored policy, or None when publication was skipped

        Raises:
            PublishError: If the policy could not be created or updated
        """
        if not self.should_publish(team_id, kind, limits):
            return None

        policy = self.build(team_id, kind, limits, aggregate)
        try:
            stored = self.store.create(policy)
        except ConflictError:
            logger.info(f"{policy.resource.kind} {policy.name} already exists, fetching for update")
            stored = self._update_existing(policy)
        except KeyManagerError as e:
            raise PublishError(f"Failed to create {policy.resource.kind} for team {team_id}") from e
        else:
            logger.info(
                f"Created {policy.resource.kind} {policy.name} for team {team_id} "
                f"(limit: {policy.limit} {policy.resource.unit}/{policy.window})"
            )
        return stored

    def _update_existing(self, policy: RateLimitPolicy) -> RateLimitPolicy:
        """Update path of the upsert: carry the stored identity onto the new definition."""
        try:
            existing = self.store.get(policy.kind, policy.name)
        except KeyManagerError as e:
            raise PublishError(f"Failed to get existing {policy.resource.kind} for update") from e
        if existing is None:
            raise PublishError(f"{policy.resource.kind} {policy.name} disappeared during update")

        policy.uid = existing.uid
        policy.resource_version = existing.resource_version
        try:
            stored = self.store.replace(policy)
        except KeyManagerError as e:
            raise PublishError(f"Failed to update existing {policy.resource.kind}") from e

        logger.info(
            f"Updated existing {policy.resource.kind} {policy.name} "
            f"(limit: {policy.limit} {policy.resource.unit}/{policy.window})"
        )
        return stored

    def retract_kind(self, team_id: str, kind: PolicyKind) -> bool:
        """Delete one policy of a team; returns False when there was none."""
        name = labels.policy_name(team_id, kind.value)
        try:
            self.store.delete(kind, name)
        except NotFoundError:
            logger.debug(f"No {kind.value} policy {name} to delete")
            return False
        logger.info(f"Deleted {POLICY_RESOURCES[kind].kind} {name}")
        return True

    def retract(self, team_id: str) -> None:
        """Best-effort delete of both policies of a team; failures are only logged."""
        for kind in PolicyKind:
            try:
                self.retract_kind(team_id, kind)
            except KeyManagerError as e:
                logger.warning(f"Failed to delete {kind.value} policy for team {team_id}: {e}")

    def published(self, team_id: str) -> list[RateLimitPolicy]:
        """Policies currently stored for a team, across both kinds."""
        policies: list[RateLimitPolicy] = []
        for kind in PolicyKind:
            policies.extend(self.store.list(kind, labels.team_policies(team_id)))
        return policies

    def expected(self, team_id: str, limits: EffectiveLimits, aggregate: bool = False) -> list[RateLimitPolicy]:
        """Policies a team should have given its current limits."""
        return [
            self.build(team_id, kind, limits, aggregate)
            for kind in PolicyKind
            if self.should_publish(team_id, kind, limits)
        ]


COMPARED_FIELDS = ("limit_name", "limit", "window", "counter", "predicate", "gateway_name")


def policy_drift(expected: RateLimitPolicy, actual: RateLimitPolicy) -> list[str]:
    """Names of the enforcement fields where a stored policy differs from its definition."""
    return [name for name in COMPARED_FIELDS if getattr(expected, name) != getattr(actual, name)]
