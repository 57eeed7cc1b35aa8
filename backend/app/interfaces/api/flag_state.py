from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse

from app.application.services.access_evaluator import AuthenticationResult
from app.application.services.flag_state_service import get_all_flag_values, get_flag_details, get_flag_state
from app.domain.models.environment import Environment
from app.infrastructure.db.repository import Repository
from app.infrastructure.observability.metrics import record_flag_read
from app.interfaces.api.deps import get_repository, require_api_key

router = APIRouter(tags=["flag-state"])


def _require_environment(auth: AuthenticationResult) -> Environment:
    if auth.environment is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error_code": "environment_not_found", "message": "Environment not found"},
        )
    return auth.environment


@router.get("/flag/{environment}/{name}")
def read_flag_state(
    environment: str,
    name: str,
    auth: AuthenticationResult = Depends(require_api_key),
    repository: Repository = Depends(get_repository),
) -> JSONResponse:
    env = _require_environment(auth)
    record_flag_read("flag")
    return JSONResponse(content=get_flag_state(repository, env, name))


@router.get("/all-flags/{environment}")
def read_all_flags(
    environment: str,
    auth: AuthenticationResult = Depends(require_api_key),
    repository: Repository = Depends(get_repository),
) -> JSONResponse:
    env = _require_environment(auth)
    record_flag_read("all-flags")
    return JSONResponse(content=get_all_flag_values(repository, env))


@router.get("/get-flags/{environment}")
def read_flag_details(
    environment: str,
    auth: AuthenticationResult = Depends(require_api_key),
    repository: Repository = Depends(get_repository),
) -> JSONResponse:
    env = _require_environment(auth)
    record_flag_read("get-flags")
    return JSONResponse(content=get_flag_details(repository, env))
