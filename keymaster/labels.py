from __future__ import annotations
from typing import Optional
import re
from datetime import datetime, timezone

from keymaster.environment import SECRET_SELECTOR_LABEL, SECRET_SELECTOR_VALUE


PREFIX = "maas"

# label keys
TEAM_ID = f"{PREFIX}/team-id"
USER_ID = f"{PREFIX}/user-id"
TEAM_ROLE = f"{PREFIX}/team-role"
TIER = f"{PREFIX}/tier"
KEY_SHA256 = f"{PREFIX}/key-sha256"
RESOURCE_TYPE = f"{PREFIX}/resource-type"
MANAGED_BY = f"{PREFIX}/managed-by"
AUTHORINO_MANAGED_BY = "authorino.kuadrant.io/managed-by"

# annotation keys
TEAM_NAME = f"{PREFIX}/team-name"
DESCRIPTION = f"{PREFIX}/description"
DEFAULT_TIER = f"{PREFIX}/default-tier"
TOKEN_LIMIT = f"{PREFIX}/token-limit"
REQUEST_LIMIT = f"{PREFIX}/request-limit"
TIME_WINDOW = f"{PREFIX}/time-window"
TOKEN_WINDOW = f"{PREFIX}/token-window"
REQUEST_WINDOW = f"{PREFIX}/request-window"
AGGREGATE_LIMITS = f"{PREFIX}/aggregate-limits"
USER_EMAIL = f"{PREFIX}/user-email"
MODELS_ALLOWED = f"{PREFIX}/models-allowed"
CUSTOM_LIMITS = f"{PREFIX}/custom-limits"
STATUS = f"{PREFIX}/status"
ALIAS = f"{PREFIX}/alias"
CREATED_AT = f"{PREFIX}/created-at"
UPDATED_AT = f"{PREFIX}/updated-at"
GROUPS = "kuadrant.io/groups"

# resource-type values
TEAM_CONFIG = "team-config"
TEAM_KEY = "team-key"

MANAGER_NAME = "key-manager"

_IDENTIFIER = re.compile(r"^[a-z0-9]([a-z0-9-]*[a-z0-9])?$")


def is_valid_identifier(value: str) -> bool:
    """Check a team or user id against the DNS label rules (RFC 1123)."""
    return 0 < len(value) <= 63 and bool(_IDENTIFIER.match(value))


def now() -> str:
    """Timestamp used for created-at/updated-at annotations."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def team_record_name(team_id: str) -> str:
    return f"team-{team_id}-config"


def key_record_name(user_id: str, team_id: str, fingerprint: str) -> str:
    return f"apikey-{user_id}-{team_id}-{fingerprint[:8]}"


def policy_name(team_id: str, kind: str) -> str:
    return f"team-{team_id}-{kind}-limits"


def selector(labels: dict[str, str]) -> str:
    """Render an exact-match label set as a Kubernetes label selector."""
    return ",".join(f"{key}={value}" for key, value in labels.items())


def team_configs() -> dict[str, str]:
    """Selector for all team config records."""
    return {RESOURCE_TYPE: TEAM_CONFIG}


def team_keys(team_id: str, user_id: Optional[str] = None) -> dict[str, str]:
    """Selector for the api keys of a team, optionally narrowed to one user."""
    labels = {SECRET_SELECTOR_LABEL: SECRET_SELECTOR_VALUE, TEAM_ID: team_id}
    if user_id:
        labels[USER_ID] = user_id
    return labels


def key_fingerprint(fingerprint: str) -> dict[str, str]:
    """Selector for the api key carrying a fingerprint."""
    return {KEY_SHA256: fingerprint}


def team_policies(team_id: str) -> dict[str, str]:
    """Selector for the enforcement policies generated for a team."""
    return {MANAGED_BY: MANAGER_NAME, TEAM_ID: team_id}
