"""Team, membership and api key lifecycle.

Teams and keys are records in an `EntityStore`; memberships are not stored at
all but derived from the active keys of a team. Team creation publishes the
team's enforcement policies through a `PolicyPublisher` and is run as a saga so
a failed publish removes the half-created team again.
"""

from __future__ import annotations
from typing import Any, Optional, Union
from dataclasses import dataclass, field

from keymaster import labels
from keymaster.backend.models.policy import PolicyKind, RateLimitPolicy
from keymaster.backend.models.secret import Secret
from keymaster.backend.policy_store import KuadrantPolicyStore
from keymaster.backend.store import EntityStore, SecretStore
from keymaster.config import (
    ALL_MODELS,
    MODEL_CATALOG,
    EffectiveLimits,
    LimitOverrides,
    Model,
    UNLIMITED,
    available_tiers,
    is_valid_window,
    lookup_tier,
)
from keymaster.credentials import fingerprint, generate_credential
from keymaster.environment import (
    DEFAULT_TEAM_ID,
    DEFAULT_TEAM_TIER,
    DEFAULT_TIER,
    ENABLE_POLICY_MANAGEMENT,
    GATEWAY_NAME,
    KEY_NAMESPACE,
)
from keymaster.errors import (
    ConflictError,
    KeyManagerError,
    NotAMemberError,
    NotFoundError,
    PolicyManagementDisabledError,
    ValidationError,
)
from keymaster.limits import check_tier_configuration, resolve_limits
from keymaster.log import logger
from keymaster.policy import PolicyPublisher, policy_drift
from keymaster.records import APIKey, KeyStatus, Membership, Role, Team
from keymaster.saga import Saga


DEFAULT_TEAM_NAME = "Default Team"
DEFAULT_TEAM_DESCRIPTION = "Default team for simple deployments - users without team assignment"
LEGACY_KEY_ALIAS = "legacy-key"


@dataclass
class KeyUpdate:
    """Fields of an api key that may change after creation."""

    token_limit: Optional[int] = None
    request_limit: Optional[int] = None
    time_window: Optional[str] = None
    status: Optional[Union[KeyStatus, str]] = None
    alias: Optional[str] = None

    def __post_init__(self):
        for name in ("token_limit", "request_limit"):
            value = getattr(self, name)
            if value is not None and value < UNLIMITED:
                raise ValidationError(f"{name} must be a positive number, 0 or -1 (unlimited)")
        if self.time_window is not None and not is_valid_window(self.time_window):
            raise ValidationError(f"time_window must look like 30s, 1m, 1h or 1d, got '{self.time_window}'")
        if isinstance(self.status, str):
            try:
                self.status = KeyStatus(self.status)
            except ValueError:
                raise ValidationError(f"status must be one of: {', '.join(s.value for s in KeyStatus)}")

    @property
    def is_empty(self) -> bool:
        return all(
            value is None
            for value in (self.token_limit, self.request_limit, self.time_window, self.status, self.alias)
        )


@dataclass
class CreatedKey:
    """A freshly issued key. This is the only place the secret value is ever returned."""

    secret: str
    fingerprint: str
    key: APIKey
    limits: EffectiveLimits

    @property
    def secret_name(self) -> str:
        return self.key.name

    def serialize(self) -> dict[str, Any]:
        limits = self.limits
        return {
            "api_key": self.secret,
            "user_id": self.key.user_id,
            "team_id": self.key.team_id,
            "secret_name": self.secret_name,
            "role": self.key.role,
            "models_allowed": list(limits.models_allowed),
            "tier": limits.tier,
            "token_limit": limits.token_limit,
            "request_limit": limits.request_limit,
            "time_window": limits.token_window,
            "request_window": limits.request_window,
            "effective_limits": limits.serialize(),
            "inherited_policies": {
                "tier": limits.tier,
                "team_id": self.key.team_id,
                "team_hourly_limit": limits.token_limit_per_hour,
                "max_concurrent_requests": limits.max_concurrent_requests,
                "models_allowed": list(limits.models_allowed),
            },
            "custom_constraints": dict(self.key.custom_limits),
        }


@dataclass
class TeamDetail:
    team: Team
    members: list[Membership] = field(default_factory=list)
    keys: list[str] = field(default_factory=list)

    def serialize(self) -> dict[str, Any]:
        data = self.team.serialize()
        data["members"] = [member.serialize() for member in self.members]
        data["keys"] = list(self.keys)
        return data


@dataclass
class TeamPolicies:
    team: Team
    limits: EffectiveLimits
    policies: list[RateLimitPolicy] = field(default_factory=list)

    def serialize(self) -> dict[str, Any]:
        return {
            "team_id": self.team.team_id,
            "tier": self.team.tier,
            "effective_limits": self.limits.serialize(),
            "policies": [
                {
                    "name": policy.name,
                    "kind": policy.resource.kind,
                    "limit": policy.limit,
                    "window": policy.window,
                    "counter": policy.counter,
                }
                for policy in self.policies
            ],
        }


@dataclass
class TeamUsage:
    """Key and membership counts for a team. No consumption metering."""

    team: Team
    total_members: int
    total_keys: int
    active_keys: int
    members_summary: list[dict[str, Any]] = field(default_factory=list)
    generated_at: str = field(default_factory=labels.now)

    def serialize(self) -> dict[str, Any]:
        return {
            "team_id": self.team.team_id,
            "team_name": self.team.display_name,
            "tier": self.team.tier,
            "total_members": self.total_members,
            "total_keys": self.total_keys,
            "active_keys": self.active_keys,
            "generated_at": self.generated_at,
            "members_summary": self.members_summary,
        }


@dataclass
class TeamActivity:
    """Per-key detail of a team."""

    team: Team
    keys: list[APIKey] = field(default_factory=list)
    generated_at: str = field(default_factory=labels.now)

    @property
    def active_keys(self) -> int:
        return len([key for key in self.keys if key.status == KeyStatus.ACTIVE])

    def serialize(self) -> dict[str, Any]:
        return {
            "team_id": self.team.team_id,
            "total_keys": len(self.keys),
            "active_keys": self.active_keys,
            "generated_at": self.generated_at,
            "keys": [key.serialize() for key in self.keys],
        }


@dataclass
class TeamCompliance:
    """Published policies of a team compared with the ones its record implies."""

    team: Team
    missing: list[str] = field(default_factory=list)
    drifted: dict[str, list[str]] = field(default_factory=dict)
    unexpected: list[str] = field(default_factory=list)

    @property
    def compliant(self) -> bool:
        return not (self.missing or self.drifted or self.unexpected)

    def serialize(self) -> dict[str, Any]:
        return {
            "team_id": self.team.team_id,
            "tier": self.team.tier,
            "compliant": self.compliant,
            "missing_policies": list(self.missing),
            "drifted_policies": dict(self.drifted),
            "unexpected_policies": list(self.unexpected),
            "message": (
                "Published policies match the team limits"
                if self.compliant
                else "Published policies differ from the team limits, sync the team to repair them"
            ),
        }


@dataclass
class ComplianceReport:
    teams: list[TeamCompliance] = field(default_factory=list)
    generated_at: str = field(default_factory=labels.now)

    def serialize(self) -> dict[str, Any]:
        compliant = len([team for team in self.teams if team.compliant])
        total = len(self.teams)
        return {
            "timestamp": self.generated_at,
            "total_teams": total,
            "compliant_teams": compliant,
            "non_compliant_teams": total - compliant,
            "compliance_percentage": compliant / total * 100 if total else 100.0,
            "team_details": [team.serialize() for team in self.teams],
        }


@dataclass
class ComponentStatus:
    status: str  # ready or unavailable
    message: str


@dataclass
class PolicyHealth:
    components: dict[str, ComponentStatus] = field(default_factory=dict)
    generated_at: str = field(default_factory=labels.now)

    @property
    def healthy(self) -> bool:
        return all(component.status == "ready" for component in self.components.values())

    def serialize(self) -> dict[str, Any]:
        return {
            "overall_status": "healthy" if self.healthy else "degraded",
            "timestamp": self.generated_at,
            "policies": {
                name: {"status": component.status, "message": component.message}
                for name, component in self.components.items()
            },
        }


def _validate_identifier(kind: str, value: str) -> None:
    if not labels.is_valid_identifier(value):
        raise ValidationError(
            f"{kind} must contain only lowercase alphanumeric characters and hyphens, "
            "start and end with an alphanumeric character, and be 1-63 characters long"
        )


def _is_key(record: Secret) -> bool:
    return record.labels.get(labels.RESOURCE_TYPE) == labels.TEAM_KEY


class LifecycleEngine:
    """Create, update and delete teams and api keys, keeping policies in step.

    Policy management is disabled by passing `publisher=None`: teams and keys are
    still managed, nothing is published or retracted.
    """

    def __init__(
        self,
        entities: EntityStore,
        publisher: Optional[PolicyPublisher] = None,
        default_tier: str = DEFAULT_TIER,
        default_team_tier: str = DEFAULT_TEAM_TIER,
        default_team_id: str = DEFAULT_TEAM_ID,
    ):
        check_tier_configuration(default_tier, default_team_tier)
        self.entities = entities
        self.publisher = publisher
        self.default_tier = default_tier
        self.default_team_tier = default_team_tier
        self.default_team_id = default_team_id

    # limits

    def get_effective_tier_limits(self, tier_name: str) -> EffectiveLimits:
        return resolve_limits(tier_name, default_tier=self.default_tier)

    def get_default_policies(self) -> dict[str, EffectiveLimits]:
        """The limits of every tier in the catalog, without overrides."""
        return {tier: self.get_effective_tier_limits(tier) for tier in available_tiers()}

    def team_limits(self, team: Team) -> EffectiveLimits:
        return resolve_limits(team.tier, team.overrides, default_tier=self.default_tier)

    # teams

    def _load_team(self, team_id: str) -> Team:
        record = self.entities.get(labels.team_record_name(team_id))
        if record is None:
            raise NotFoundError(f"Team {team_id} not found")
        return Team.from_secret(record)

    def create_team(
        self,
        team_id: str,
        display_name: str,
        description: str = "",
        tier: str = "",
        overrides: Optional[LimitOverrides] = None,
        aggregate_limits: bool = False,
    ) -> Team:
        """Create a team and publish its enforcement policies.

        The team record is written first, then the token and request policies.
        If either publish fails the steps already taken are undone and the
        publish error is raised.

        Raises:
            ValidationError: Malformed team id, missing name or unknown tier
            ConflictError: The team already exists
            PublishError: A policy could not be published
        """
        _validate_identifier("team_id", team_id)
        if not display_name:
            raise ValidationError("team_name is required")
        if not tier:
            tier = self.default_tier
            logger.info(f"No tier specified for team {team_id}, using default tier: {tier}")
        if lookup_tier(tier) is None:
            raise ValidationError(f"Invalid tier: {tier}. Available tiers: {', '.join(available_tiers())}")

        # direct lookup; a concurrent create still loses on the store's create-if-absent
        if self.entities.get(labels.team_record_name(team_id)) is not None:
            raise ConflictError(f"Team {team_id} already exists")

        team = Team(
            team_id=team_id,
            display_name=display_name,
            tier=tier,
            description=description,
            overrides=overrides or LimitOverrides(),
            aggregate_limits=aggregate_limits,
            created_at=labels.now(),
        )
        limits = self.team_limits(team)

        saga = Saga(f"create team {team_id}")
        saga.add_step(
            "write team record",
            lambda: self.entities.create(team.to_secret(self.entities.namespace)),
            lambda: self.entities.delete(team.record_name),
        )
        if self.publisher is not None:
            for kind in PolicyKind:
                saga.add_step(
                    f"publish {kind.value} policy",
                    self._publish_step(team, kind, limits),
                    self._retract_step(team_id, kind),
                )

        stored = saga.run()[0]
        team.resource_version = stored.resource_version
        logger.info(f"Team created successfully: {team_id} ({tier} tier)")
        return team

    def _publish_step(self, team: Team, kind: PolicyKind, limits: EffectiveLimits):
        return lambda: self.publisher.publish(team.team_id, kind, limits, team.aggregate_limits)

    def _retract_step(self, team_id: str, kind: PolicyKind):
        return lambda: self.publisher.retract_kind(team_id, kind)

    def delete_team(self, team_id: str) -> int:
        """Delete a team with its policies and keys.

        Policies and keys go first, best-effort; the team record is removed last.

        Returns:
            Number of api keys deleted with the team
        """
        team = self._load_team(team_id)

        if self.publisher is not None:
            self.publisher.retract(team_id)

        deleted = 0
        try:
            deleted = self.entities.delete_collection(labels.team_keys(team_id))
        except KeyManagerError as e:
            logger.warning(f"Failed to delete keys of team {team_id}: {e}")

        self.entities.delete(team.record_name)
        logger.info(f"Team deleted successfully: {team_id} ({deleted} keys removed)")
        return deleted

    def sync_team_policy(self, team_id: str) -> TeamPolicies:
        """Re-publish a team's policies from its stored tier and overrides."""
        team = self._load_team(team_id)
        limits = self.team_limits(team)

        policies = []
        if self.publisher is not None:
            for kind in PolicyKind:
                policy = self.publisher.publish(team_id, kind, limits, team.aggregate_limits)
                if policy is not None:
                    policies.append(policy)
        logger.info(f"Synced policies for team {team_id}")
        return TeamPolicies(team=team, limits=limits, policies=policies)

    def list_teams(self) -> list[Team]:
        return [Team.from_secret(record) for record in self.entities.list(labels.team_configs())]

    def get_team(self, team_id: str) -> TeamDetail:
        team = self._load_team(team_id)
        keys = self._team_keys(team_id)
        return TeamDetail(
            team=team,
            members=self._memberships(keys),
            keys=[key.name for key in keys],
        )

    def get_team_policies(self, team_id: str) -> TeamPolicies:
        team = self._load_team(team_id)
        policies = self.publisher.published(team_id) if self.publisher is not None else []
        return TeamPolicies(team=team, limits=self.team_limits(team), policies=policies)

    def get_team_usage(self, team_id: str) -> TeamUsage:
        team = self._load_team(team_id)
        keys = self._team_keys(team_id)
        members = self._memberships(keys)

        summary = []
        for member in members:
            data = member.serialize()
            data["keys_count"] = len([key for key in keys if key.user_id == member.user_id])
            summary.append(data)

        return TeamUsage(
            team=team,
            total_members=len(members),
            total_keys=len(keys),
            active_keys=len([key for key in keys if key.status == KeyStatus.ACTIVE]),
            members_summary=summary,
        )

    def get_team_activity(self, team_id: str) -> TeamActivity:
        team = self._load_team(team_id)
        return TeamActivity(team=team, keys=self._team_keys(team_id))

    # policy reports

    def _require_publisher(self) -> PolicyPublisher:
        if self.publisher is None:
            raise PolicyManagementDisabledError("Policy management is disabled")
        return self.publisher

    def check_team_compliance(self, team: Team) -> TeamCompliance:
        """Compare a team's stored policies with the ones its record and tier imply."""
        publisher = self._require_publisher()
        expected = {
            policy.name: policy
            for policy in publisher.expected(team.team_id, self.team_limits(team), team.aggregate_limits)
        }
        stored = {policy.name: policy for policy in publisher.published(team.team_id)}

        report = TeamCompliance(team=team)
        for name, policy in expected.items():
            if name not in stored:
                report.missing.append(name)
                continue
            drift = policy_drift(policy, stored[name])
            if drift:
                report.drifted[name] = drift
        report.unexpected = sorted(set(stored) - set(expected))

        if not report.compliant:
            logger.warning(f"Policies of team {team.team_id} are out of sync with its limits")
        return report

    def get_policy_compliance(self) -> ComplianceReport:
        self._require_publisher()
        return ComplianceReport(teams=[self.check_team_compliance(team) for team in self.list_teams()])

    def get_policy_health(self) -> PolicyHealth:
        publisher = self._require_publisher()
        health = PolicyHealth()
        health.components["tier-definitions"] = ComponentStatus(
            "ready", f"Tier definitions loaded ({', '.join(available_tiers())})"
        )
        try:
            publisher.store.list(PolicyKind.TOKEN, {labels.MANAGED_BY: labels.MANAGER_NAME})
        except KeyManagerError as e:
            logger.warning(f"Policy store health check failed: {e}")
            health.components["policy-store"] = ComponentStatus("unavailable", e.message)
        else:
            health.components["policy-store"] = ComponentStatus(
                "ready", f"Publishing to gateway {publisher.gateway_name} in namespace {publisher.store.namespace}"
            )
        return health

    def list_models(self, tier: str = "") -> list[Model]:
        """The model catalog, narrowed to a tier's allowed models when a tier is given."""
        if not tier:
            return list(MODEL_CATALOG)
        allowed = self.get_effective_tier_limits(tier).models_allowed
        if ALL_MODELS in allowed:
            return list(MODEL_CATALOG)
        return [model for model in MODEL_CATALOG if model.id in allowed]

    def ensure_default_team(self) -> Team:
        """Create the default team unless it exists already."""
        try:
            return self._load_team(self.default_team_id)
        except NotFoundError:
            pass

        try:
            return self.create_team(
                self.default_team_id,
                DEFAULT_TEAM_NAME,
                DEFAULT_TEAM_DESCRIPTION,
                self.default_team_tier,
            )
        except ConflictError:
            logger.info("Default team already exists, skipping creation")
            return self._load_team(self.default_team_id)

    # memberships

    def _team_keys(self, team_id: str, user_id: Optional[str] = None) -> list[APIKey]:
        return [APIKey.from_secret(record) for record in self.entities.list(labels.team_keys(team_id, user_id))]

    def _memberships(self, keys: list[APIKey]) -> list[Membership]:
        """One membership per user, taken from the user's first active key."""
        members: dict[str, Membership] = {}
        for key in keys:
            if key.status != KeyStatus.ACTIVE or key.user_id in members:
                continue
            members[key.user_id] = key.to_membership()
        return list(members.values())

    def _default_membership(self, user_id: str) -> Membership:
        limits = resolve_limits(self.default_team_tier, default_tier=self.default_tier)
        return Membership(
            user_id=user_id,
            team_id=self.default_team_id,
            role=Role.MEMBER.value,
            tier=limits.tier,
            token_limit=limits.token_limit,
            request_limit=limits.request_limit,
            time_window=limits.token_window,
            request_window=limits.request_window,
            models_allowed=list(limits.models_allowed),
            team_name=DEFAULT_TEAM_NAME,
            user_email=f"{user_id}@default.local",
        )

    def _team_membership(self, team: Team, user_id: str, role: Role, user_email: str = "") -> Membership:
        """Membership for a user admitted to a team: the team's limits."""
        limits = self.team_limits(team)
        return Membership(
            user_id=user_id,
            team_id=team.team_id,
            role=role.value,
            tier=limits.tier,
            token_limit=limits.token_limit,
            request_limit=limits.request_limit,
            time_window=limits.token_window,
            request_window=limits.request_window,
            models_allowed=list(limits.models_allowed),
            team_name=team.display_name,
            user_email=user_email,
        )

    def _resolve_membership(self, team_id: str, user_id: str) -> Membership:
        """Membership of a user creating a key.

        The team must exist. In the default team membership is synthesized;
        elsewhere it is the first active key of the user, or, for a team without
        any keys, the caller becomes its owner.
        """
        team = self._load_team(team_id)
        if team_id == self.default_team_id:
            return self._default_membership(user_id)

        members = self._memberships(self._team_keys(team_id, user_id))
        if members:
            return members[0]

        if not self.entities.list(labels.team_keys(team_id)):
            logger.info(f"First key for team {team_id}, {user_id} becomes its owner")
            return self._team_membership(team, user_id, Role.OWNER)

        raise NotAMemberError(f"User {user_id} is not a member of team {team_id}")

    def list_team_members(self, team_id: str) -> list[Membership]:
        self._load_team(team_id)
        return self._memberships(self._team_keys(team_id))

    def add_team_member(
        self,
        team_id: str,
        user_id: str,
        role: Union[Role, str] = Role.MEMBER,
        user_email: str = "",
        overrides: Optional[LimitOverrides] = None,
    ) -> CreatedKey:
        """Admit a user to a team by issuing the user's first key there."""
        _validate_identifier("user_id", user_id)
        try:
            role = Role(role)
        except ValueError:
            raise ValidationError(f"role must be one of: {', '.join(r.value for r in Role)}")

        team = self._load_team(team_id)
        if self._memberships(self._team_keys(team_id, user_id)):
            raise ConflictError(f"User {user_id} is already a member of team {team_id}")

        member = self._team_membership(team, user_id, role, user_email)
        created = self._issue_key(member, overrides)
        logger.info(f"User {user_id} added to team {team_id} as {role.value}")
        return created

    def remove_team_member(self, team_id: str, user_id: str) -> int:
        """Remove a user from a team by deleting all of the user's keys there."""
        self._load_team(team_id)
        deleted = self.entities.delete_collection(labels.team_keys(team_id, user_id))
        if not deleted:
            raise NotFoundError(f"User {user_id} has no keys in team {team_id}")

        logger.info(f"User {user_id} removed from team {team_id} ({deleted} keys deleted)")
        return deleted

    # api keys

    def _key_limits(self, member: Membership, overrides: LimitOverrides) -> EffectiveLimits:
        """Request overrides win over the membership's limits, which win over the tier."""
        token_window, request_window = overrides.token_window, overrides.request_window
        if not overrides.time_window:
            # an explicit time_window applies to both kinds
            token_window = token_window or member.time_window or None
            request_window = request_window or member.request_window or member.time_window or None

        inherited = LimitOverrides(
            token_limit=overrides.token_limit or member.token_limit,
            request_limit=overrides.request_limit or member.request_limit,
            time_window=overrides.time_window,
            token_window=token_window,
            request_window=request_window,
            models=list(overrides.models or member.models_allowed),
        )
        return resolve_limits(member.tier, inherited, default_tier=self.default_tier)

    def _issue_key(
        self,
        member: Membership,
        overrides: Optional[LimitOverrides] = None,
        alias: Optional[str] = None,
        custom_limits: Optional[dict[str, Any]] = None,
    ) -> CreatedKey:
        limits = self._key_limits(member, overrides or LimitOverrides())
        secret, key_fingerprint = generate_credential()

        key = APIKey(
            name=labels.key_record_name(member.user_id, member.team_id, key_fingerprint),
            team_id=member.team_id,
            user_id=member.user_id,
            role=member.role,
            tier=limits.tier,
            fingerprint=key_fingerprint,
            token_limit=limits.token_limit,
            request_limit=limits.request_limit,
            time_window=limits.token_window,
            request_window=limits.request_window,
            models_allowed=list(limits.models_allowed),
            alias=alias,
            team_name=member.team_name,
            user_email=member.user_email,
            custom_limits=dict(custom_limits or {}),
            created_at=labels.now(),
        )
        stored = self.entities.create(key.to_secret(self.entities.namespace, secret))
        key.resource_version = stored.resource_version

        logger.info(f"API key created for user {member.user_id} in team {member.team_id}: {key.name}")
        return CreatedKey(secret=secret, fingerprint=key_fingerprint, key=key, limits=limits)

    def create_api_key(
        self,
        team_id: str,
        user_id: str,
        alias: Optional[str] = None,
        overrides: Optional[LimitOverrides] = None,
        custom_limits: Optional[dict[str, Any]] = None,
    ) -> CreatedKey:
        """Issue a new api key for a user in a team.

        Raises:
            ValidationError: Malformed user id
            NotFoundError: The team does not exist
            NotAMemberError: The user has no active key in a team that already has keys
        """
        _validate_identifier("user_id", user_id)
        member = self._resolve_membership(team_id, user_id)
        return self._issue_key(member, overrides, alias, custom_limits)

    def generate_legacy_key(self, user_id: str) -> CreatedKey:
        """Key in the default team, for the single-tenant generate_key endpoint."""
        return self.create_api_key(self.default_team_id, user_id, alias=LEGACY_KEY_ALIAS)

    def _load_key(self, name: str) -> Secret:
        record = self.entities.get(name)
        if record is None or not _is_key(record):
            raise NotFoundError(f"API key {name} not found")
        return record

    def update_api_key(self, name: str, update: KeyUpdate) -> APIKey:
        """Change limits, status or alias of a key; identity labels never change."""
        if update.is_empty:
            raise ValidationError("No valid updates provided")

        record = self._load_key(name)
        annotations = record.annotations
        if update.token_limit is not None:
            annotations[labels.TOKEN_LIMIT] = str(update.token_limit)
        if update.request_limit is not None:
            annotations[labels.REQUEST_LIMIT] = str(update.request_limit)
        if update.time_window is not None:
            annotations[labels.TIME_WINDOW] = update.time_window
            annotations[labels.REQUEST_WINDOW] = update.time_window
        if update.status is not None:
            annotations[labels.STATUS] = update.status.value
        if update.alias is not None:
            annotations[labels.ALIAS] = update.alias
        annotations[labels.UPDATED_AT] = labels.now()

        stored = self.entities.update(record)
        logger.info(f"API key updated successfully: {name}")
        return APIKey.from_secret(stored)

    def delete_api_key_by_name(self, name: str) -> None:
        self._load_key(name)
        self.entities.delete(name)
        logger.info(f"API key deleted successfully: {name}")

    def delete_api_key_by_secret(self, secret: str) -> str:
        """Delete the key a secret belongs to, found through its fingerprint.

        Returns:
            Name of the deleted key record
        """
        matched = self.entities.list(labels.key_fingerprint(fingerprint(secret)))
        records = [record for record in matched if _is_key(record)]
        if not records:
            raise NotFoundError("API key not found")

        name = records[0].name
        self.entities.delete(name)
        logger.info(f"API key deleted successfully: {name}")
        return name

    def list_team_keys(self, team_id: str) -> list[APIKey]:
        self._load_team(team_id)
        return self._team_keys(team_id)


_engine: Optional[LifecycleEngine] = None


def get_engine() -> LifecycleEngine:
    """Get the engine backed by the cluster, creating it if necessary."""
    global _engine

    if _engine is None:
        publisher = None
        if ENABLE_POLICY_MANAGEMENT:
            publisher = PolicyPublisher(KuadrantPolicyStore(KEY_NAMESPACE), GATEWAY_NAME)
        _engine = LifecycleEngine(SecretStore(KEY_NAMESPACE), publisher)
    return _engine
