"""Team and api key records, and their layout on Secret labels and annotations."""

from __future__ import annotations
from typing import Any, Optional
from enum import Enum
from dataclasses import dataclass, field
import json

from keymaster import labels
from keymaster.backend.models.secret import Secret
from keymaster.config import UNLIMITED, LimitOverrides, is_valid_window
from keymaster.environment import SECRET_SELECTOR_LABEL, SECRET_SELECTOR_VALUE
from keymaster.log import logger


class KeyStatus(Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class Role(Enum):
    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"


def _int(value: Optional[str]) -> int:
    try:
        return int(value) if value else 0
    except ValueError:
        return 0


def _stored_limit(record: str, name: str, value: Optional[str]) -> int:
    """Override limit read back from a record; out-of-range values are dropped."""
    limit = _int(value)
    if limit < UNLIMITED:
        logger.warning(f"Ignoring out-of-range {name} '{value}' on {record}")
        return 0
    return limit


def _stored_window(record: str, name: str, value: Optional[str]) -> Optional[str]:
    if value and not is_valid_window(value):
        logger.warning(f"Ignoring malformed {name} '{value}' on {record}")
        return None
    return value or None


@dataclass
class Team:
    """A team: the unit limits are assigned to and policies are published for."""

    team_id: str
    display_name: str
    tier: str
    description: str = ""
    overrides: LimitOverrides = field(default_factory=LimitOverrides)
    aggregate_limits: bool = False  # count the whole team against one budget
    created_at: Optional[str] = None
    resource_version: Optional[str] = None

    @property
    def record_name(self) -> str:
        return labels.team_record_name(self.team_id)

    def to_secret(self, namespace: str) -> Secret:
        annotations = {
            labels.TEAM_NAME: self.display_name,
            labels.DESCRIPTION: self.description,
            labels.DEFAULT_TIER: self.tier,
            labels.TOKEN_LIMIT: str(self.overrides.token_limit or 0),
            labels.REQUEST_LIMIT: str(self.overrides.request_limit or 0),
            labels.TIME_WINDOW: self.overrides.time_window or "",
            labels.AGGREGATE_LIMITS: "true" if self.aggregate_limits else "false",
            labels.CREATED_AT: self.created_at or labels.now(),
        }
        if self.overrides.token_window:
            annotations[labels.TOKEN_WINDOW] = self.overrides.token_window
        if self.overrides.request_window:
            annotations[labels.REQUEST_WINDOW] = self.overrides.request_window

        return Secret(
            name=self.record_name,
            namespace=namespace,
            labels={
                labels.RESOURCE_TYPE: labels.TEAM_CONFIG,
                labels.TEAM_ID: self.team_id,
                labels.TIER: self.tier,
            },
            annotations=annotations,
            string_data={"team_id": self.team_id, "team_config": "active"},
        )

    @classmethod
    def from_secret(cls, secret: Secret) -> Team:
        annotations = secret.annotations
        name = secret.name
        return cls(
            team_id=secret.labels.get(labels.TEAM_ID, ""),
            display_name=annotations.get(labels.TEAM_NAME, ""),
            description=annotations.get(labels.DESCRIPTION, ""),
            tier=annotations.get(labels.DEFAULT_TIER) or secret.labels.get(labels.TIER, ""),
            overrides=LimitOverrides(
                token_limit=_stored_limit(name, labels.TOKEN_LIMIT, annotations.get(labels.TOKEN_LIMIT)),
                request_limit=_stored_limit(name, labels.REQUEST_LIMIT, annotations.get(labels.REQUEST_LIMIT)),
                time_window=_stored_window(name, labels.TIME_WINDOW, annotations.get(labels.TIME_WINDOW)),
                token_window=_stored_window(name, labels.TOKEN_WINDOW, annotations.get(labels.TOKEN_WINDOW)),
                request_window=_stored_window(name, labels.REQUEST_WINDOW, annotations.get(labels.REQUEST_WINDOW)),
            ),
            aggregate_limits=annotations.get(labels.AGGREGATE_LIMITS) == "true",
            created_at=annotations.get(labels.CREATED_AT),
            resource_version=secret.resource_version,
        )

    def serialize(self) -> dict[str, Any]:
        return {
            "team_id": self.team_id,
            "team_name": self.display_name,
            "description": self.description,
            "tier": self.tier,
            "token_limit": self.overrides.token_limit or 0,
            "request_limit": self.overrides.request_limit or 0,
            "time_window": self.overrides.time_window or "",
            "aggregate_limits": self.aggregate_limits,
            "created_at": self.created_at,
        }


@dataclass
class Membership:
    """A user's standing in a team, derived from one of the user's api keys."""

    user_id: str
    team_id: str
    role: str
    tier: str
    token_limit: int
    request_limit: int
    time_window: str
    request_window: str = ""
    models_allowed: list[str] = field(default_factory=list)
    team_name: str = ""
    user_email: str = ""
    joined_at: Optional[str] = None

    def serialize(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "user_email": self.user_email,
            "role": self.role,
            "team_id": self.team_id,
            "team_name": self.team_name,
            "tier": self.tier,
            "default_models": list(self.models_allowed),
            "joined_at": self.joined_at,
            "token_limit": self.token_limit,
            "request_limit": self.request_limit,
            "time_window": self.time_window,
            "request_window": self.request_window or self.time_window,
        }


@dataclass
class APIKey:
    """Metadata of an issued api key. The secret value itself is never read back."""

    name: str
    team_id: str
    user_id: str
    role: str
    tier: str
    fingerprint: str
    token_limit: int
    request_limit: int
    time_window: str
    request_window: str = ""
    models_allowed: list[str] = field(default_factory=list)
    status: KeyStatus = KeyStatus.ACTIVE
    alias: Optional[str] = None
    team_name: str = ""
    user_email: str = ""
    custom_limits: dict[str, Any] = field(default_factory=dict)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    resource_version: Optional[str] = None

    def to_secret(self, namespace: str, secret_value: str) -> Secret:
        annotations = {
            labels.TEAM_NAME: self.team_name,
            labels.USER_EMAIL: self.user_email,
            labels.TOKEN_LIMIT: str(self.token_limit),
            labels.REQUEST_LIMIT: str(self.request_limit),
            labels.TIME_WINDOW: self.time_window,
            labels.MODELS_ALLOWED: ",".join(self.models_allowed),
            labels.TIER: self.tier,
            labels.CREATED_AT: self.created_at or labels.now(),
            labels.STATUS: self.status.value,
            labels.GROUPS: f"team-{self.team_id},tier-{self.tier}",
        }
        if self.request_window:
            annotations[labels.REQUEST_WINDOW] = self.request_window
        if self.updated_at:
            annotations[labels.UPDATED_AT] = self.updated_at
        if self.alias:
            annotations[labels.ALIAS] = self.alias
        if self.custom_limits:
            annotations[labels.CUSTOM_LIMITS] = json.dumps(self.custom_limits)

        return Secret(
            name=self.name,
            namespace=namespace,
            labels={
                labels.AUTHORINO_MANAGED_BY: "authorino",
                SECRET_SELECTOR_LABEL: SECRET_SELECTOR_VALUE,
                labels.USER_ID: self.user_id,
                labels.TEAM_ID: self.team_id,
                labels.TEAM_ROLE: self.role,
                labels.KEY_SHA256: self.fingerprint,
                labels.TIER: self.tier,
                labels.RESOURCE_TYPE: labels.TEAM_KEY,
            },
            annotations=annotations,
            string_data={"api_key": secret_value},
        )

    @classmethod
    def from_secret(cls, secret: Secret) -> APIKey:
        annotations = secret.annotations
        models = annotations.get(labels.MODELS_ALLOWED, "")

        custom_limits: dict[str, Any] = {}
        raw = annotations.get(labels.CUSTOM_LIMITS)
        if raw:
            try:
                custom_limits = json.loads(raw)
            except ValueError:
                logger.warning(f"Ignoring malformed custom limits on key {secret.name}")

        try:
            status = KeyStatus(annotations.get(labels.STATUS, KeyStatus.ACTIVE.value))
        except ValueError:
            status = KeyStatus.INACTIVE

        return cls(
            name=secret.name,
            team_id=secret.labels.get(labels.TEAM_ID, ""),
            user_id=secret.labels.get(labels.USER_ID, ""),
            role=secret.labels.get(labels.TEAM_ROLE, ""),
            tier=secret.labels.get(labels.TIER, ""),
            fingerprint=secret.labels.get(labels.KEY_SHA256, ""),
            token_limit=_int(annotations.get(labels.TOKEN_LIMIT)),
            request_limit=_int(annotations.get(labels.REQUEST_LIMIT)),
            time_window=annotations.get(labels.TIME_WINDOW, ""),
            request_window=annotations.get(labels.REQUEST_WINDOW) or annotations.get(labels.TIME_WINDOW, ""),
            models_allowed=[model for model in models.split(",") if model],
            status=status,
            alias=annotations.get(labels.ALIAS),
            team_name=annotations.get(labels.TEAM_NAME, ""),
            user_email=annotations.get(labels.USER_EMAIL, ""),
            custom_limits=custom_limits,
            created_at=annotations.get(labels.CREATED_AT),
            updated_at=annotations.get(labels.UPDATED_AT),
            resource_version=secret.resource_version,
        )

    def to_membership(self) -> Membership:
        return Membership(
            user_id=self.user_id,
            team_id=self.team_id,
            role=self.role,
            tier=self.tier,
            token_limit=self.token_limit,
            request_limit=self.request_limit,
            time_window=self.time_window,
            request_window=self.request_window,
            models_allowed=list(self.models_allowed),
            team_name=self.team_name,
            user_email=self.user_email,
            joined_at=self.created_at,  # key creation is the join date
        )

    def serialize(self) -> dict[str, Any]:
        data = {
            "secret_name": self.name,
            "user_id": self.user_id,
            "user_email": self.user_email,
            "team_id": self.team_id,
            "role": self.role,
            "tier": self.tier,
            "token_limit": self.token_limit,
            "request_limit": self.request_limit,
            "time_window": self.time_window,
            "request_window": self.request_window or self.time_window,
            "models_allowed": list(self.models_allowed),
            "status": self.status.value,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
        if self.alias:
            data["alias"] = self.alias
        if self.custom_limits:
            data["custom_limits"] = self.custom_limits
        return data
