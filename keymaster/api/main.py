from typing import Optional
from contextlib import asynccontextmanager
import secrets

from fastapi import APIRouter, Depends, FastAPI, Header, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from keymaster import __version__
from keymaster.api.schemas import (
    AddMemberSchema,
    CreateKeySchema,
    CreateTeamSchema,
    DeleteKeySchema,
    GenerateKeySchema,
    UpdateKeySchema,
)
from keymaster.environment import ADMIN_API_KEY, CREATE_DEFAULT_TEAM
from keymaster.errors import KeyManagerError, UnauthorizedError, ValidationError
from keymaster.lifecycle import LifecycleEngine, get_engine
from keymaster.log import logger


@asynccontextmanager
async def lifespan(app: FastAPI):
    if CREATE_DEFAULT_TEAM:
        engine = app.dependency_overrides.get(get_engine, get_engine)()
        try:
            engine.ensure_default_team()
        except KeyManagerError as e:
            logger.warning(f"Failed to create default team: {e}")
    yield


app = FastAPI(title="Key Manager API", version=__version__, lifespan=lifespan)


@app.exception_handler(KeyManagerError)
async def key_manager_error_handler(request: Request, exc: KeyManagerError):
    """Render errors as a stable code plus a caller-safe message."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.code, "message": exc.message})


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies get the same shape as every other error."""
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        problems.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return await key_manager_error_handler(request, ValidationError("; ".join(problems) or "Invalid request"))


def require_admin(authorization: Optional[str] = Header(None)) -> None:
    """Check the admin key; routes are open when no admin key is configured."""
    if not ADMIN_API_KEY:
        return

    if not authorization:
        raise UnauthorizedError("Authorization header required")

    # both "Bearer <key>" and "ADMIN <key>" are accepted
    scheme, _, provided = authorization.partition(" ")
    if scheme not in ("Bearer", "ADMIN") or not provided:
        raise UnauthorizedError("Invalid authorization format. Use: Authorization: ADMIN <key>")

    if not secrets.compare_digest(provided, ADMIN_API_KEY):
        raise UnauthorizedError("Invalid admin key")


router = APIRouter(dependencies=[Depends(require_admin)])


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}


# teams


@router.post("/teams")
def create_team(body: CreateTeamSchema, engine: LifecycleEngine = Depends(get_engine)):
    team = engine.create_team(
        body.team_id,
        body.team_name,
        description=body.description,
        tier=body.default_tier,
        overrides=body.overrides(),
        aggregate_limits=body.aggregate_limits,
    )
    return {
        **team.serialize(),
        "policies_applied": engine.publisher is not None,
        "inherited_limits": engine.team_limits(team).serialize(),
    }


@router.get("/teams")
def list_teams(engine: LifecycleEngine = Depends(get_engine)):
    return {"teams": [team.serialize() for team in engine.list_teams()]}


@router.get("/teams/{team_id}")
def get_team(team_id: str, engine: LifecycleEngine = Depends(get_engine)):
    return engine.get_team(team_id).serialize()


@router.delete("/teams/{team_id}")
def delete_team(team_id: str, engine: LifecycleEngine = Depends(get_engine)):
    deleted = engine.delete_team(team_id)
    return {"message": "Team deleted successfully", "team_id": team_id, "keys_deleted": deleted}


# members


@router.post("/teams/{team_id}/members")
def add_team_member(team_id: str, body: AddMemberSchema, engine: LifecycleEngine = Depends(get_engine)):
    created = engine.add_team_member(
        team_id,
        body.user_id,
        role=body.role,
        user_email=body.user_email,
        overrides=body.overrides(),
    )
    return created.serialize()


@router.get("/teams/{team_id}/members")
def list_team_members(team_id: str, engine: LifecycleEngine = Depends(get_engine)):
    members = engine.list_team_members(team_id)
    return {"team_id": team_id, "members": [member.serialize() for member in members]}


@router.delete("/teams/{team_id}/members/{user_id}")
def remove_team_member(team_id: str, user_id: str, engine: LifecycleEngine = Depends(get_engine)):
    deleted = engine.remove_team_member(team_id, user_id)
    return {
        "message": "User removed from team successfully",
        "user_id": user_id,
        "team_id": team_id,
        "keys_deleted": deleted,
    }


# keys


@router.post("/teams/{team_id}/keys")
def create_team_key(team_id: str, body: CreateKeySchema, engine: LifecycleEngine = Depends(get_engine)):
    created = engine.create_api_key(
        team_id,
        body.user_id,
        alias=body.alias,
        overrides=body.overrides(body.models),
        custom_limits=body.custom_limits,
    )
    return created.serialize()


@router.get("/teams/{team_id}/keys")
def list_team_keys(team_id: str, engine: LifecycleEngine = Depends(get_engine)):
    return {"team_id": team_id, "keys": [key.serialize() for key in engine.list_team_keys(team_id)]}


@router.patch("/keys/{key_name}")
def update_key(key_name: str, body: UpdateKeySchema, engine: LifecycleEngine = Depends(get_engine)):
    key = engine.update_api_key(key_name, body.update())
    return {"message": "API key updated successfully", "key_name": key_name, "key": key.serialize()}


@router.delete("/keys/{key_name}")
def delete_key(key_name: str, engine: LifecycleEngine = Depends(get_engine)):
    engine.delete_api_key_by_name(key_name)
    return {"message": "API key deleted successfully", "key_name": key_name}


# policies


@router.get("/teams/{team_id}/policies")
def get_team_policies(team_id: str, engine: LifecycleEngine = Depends(get_engine)):
    return engine.get_team_policies(team_id).serialize()


@router.post("/teams/{team_id}/policies/sync")
def sync_team_policies(team_id: str, engine: LifecycleEngine = Depends(get_engine)):
    synced = engine.sync_team_policy(team_id)
    return {"message": "Team policies synced successfully", **synced.serialize()}


@router.get("/teams/{team_id}/usage")
def get_team_usage(team_id: str, engine: LifecycleEngine = Depends(get_engine)):
    return engine.get_team_usage(team_id).serialize()


@router.get("/teams/{team_id}/activity")
def get_team_activity(team_id: str, engine: LifecycleEngine = Depends(get_engine)):
    return engine.get_team_activity(team_id).serialize()


@router.get("/admin/policies/compliance")
def get_policy_compliance(engine: LifecycleEngine = Depends(get_engine)):
    return engine.get_policy_compliance().serialize()


@router.get("/admin/policies/health")
def get_policy_health(engine: LifecycleEngine = Depends(get_engine)):
    health = engine.get_policy_health()
    return JSONResponse(status_code=200 if health.healthy else 503, content=health.serialize())


@router.get("/models")
def list_models(tier: str = "", engine: LifecycleEngine = Depends(get_engine)):
    return {"object": "list", "data": [model.serialize() for model in engine.list_models(tier)]}


@router.get("/admin/policies/defaults")
def get_default_policies(engine: LifecycleEngine = Depends(get_engine)):
    tiers = engine.get_default_policies()
    return {"tiers": {name: limits.serialize() for name, limits in tiers.items()}}


@router.get("/tiers/{tier}")
def get_tier_limits(tier: str, engine: LifecycleEngine = Depends(get_engine)):
    return engine.get_effective_tier_limits(tier).serialize()


# legacy single-tenant endpoints


@router.post("/generate_key")
def generate_key(body: GenerateKeySchema, engine: LifecycleEngine = Depends(get_engine)):
    created = engine.generate_legacy_key(body.user_id)
    return {"api_key": created.secret, "user_id": created.key.user_id, "secret_name": created.secret_name}


@router.delete("/delete_key")
def delete_key_by_secret(body: DeleteKeySchema, engine: LifecycleEngine = Depends(get_engine)):
    name = engine.delete_api_key_by_secret(body.key)
    return {"message": "API key deleted successfully", "secret_name": name}


app.include_router(router)
