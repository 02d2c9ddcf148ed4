from typing import Any, Optional
import pydantic

from keymaster.config import LimitOverrides
from keymaster.lifecycle import KeyUpdate


class BaseSchema(pydantic.BaseModel):
    """
    Base schema type for request bodies.
    """

    pass


class LimitsSchema(BaseSchema):
    """
    Optional limit overrides shared by team, member and key requests.
    0 or a missing value inherits, -1 means unlimited.
    """

    token_limit: Optional[int] = None
    request_limit: Optional[int] = None
    time_window: Optional[str] = None

    def overrides(self, models: Optional[list[str]] = None) -> LimitOverrides:
        return LimitOverrides(
            token_limit=self.token_limit,
            request_limit=self.request_limit,
            time_window=self.time_window or None,
            models=list(models or []),
        )


class CreateTeamSchema(LimitsSchema):
    team_id: str
    team_name: str
    description: str = ""
    default_tier: str = ""
    aggregate_limits: bool = False


class AddMemberSchema(LimitsSchema):
    user_id: str
    role: str = "member"
    user_email: str = ""


class CreateKeySchema(LimitsSchema):
    user_id: str
    alias: Optional[str] = None
    models: list[str] = pydantic.Field(default_factory=list)
    custom_limits: Optional[dict[str, Any]] = None


class UpdateKeySchema(BaseSchema):
    token_limit: Optional[int] = None
    request_limit: Optional[int] = None
    time_window: Optional[str] = None
    status: Optional[str] = None
    alias: Optional[str] = None

    def update(self) -> KeyUpdate:
        return KeyUpdate(**self.model_dump())


class GenerateKeySchema(BaseSchema):
    user_id: str


class DeleteKeySchema(BaseSchema):
    """
    Legacy delete: the key is identified by its secret value.
    """

    key: str
