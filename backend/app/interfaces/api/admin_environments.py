from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from app.application.services.environment_service import (
    create_environment,
    delete_environment,
    update_environment,
)
from app.application.services.flag_value_resolver import format_datetime_iso8601
from app.domain.models.environment import Environment
from app.infrastructure.db.repository import Repository
from app.interfaces.api.deps import get_repository, require_admin

router = APIRouter(prefix="/admin/environments", tags=["admin"], dependencies=[Depends(require_admin)])


class EnvironmentCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    sort_order: int = 0


class EnvironmentUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    sort_order: int | None = None


def serialize_environment(environment: Environment) -> dict:
    return {
        "id": str(environment.id),
        "name": environment.name,
        "sort_order": environment.sort_order,
        "created_at": format_datetime_iso8601(environment.created_at),
    }


def _get_environment_or_404(repository: Repository, environment_id: UUID) -> Environment:
    environment = repository.get("Environment", environment_id)
    if environment is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Environment not found")
    return environment


@router.get("", status_code=status.HTTP_200_OK)
def list_environments(repository: Repository = Depends(get_repository)) -> dict:
    return {"items": [serialize_environment(environment) for environment in repository.find("Environment")]}


@router.post("", status_code=status.HTTP_201_CREATED)
def create_environment_endpoint(
    payload: EnvironmentCreateRequest,
    repository: Repository = Depends(get_repository),
) -> dict:
    return serialize_environment(create_environment(repository, name=payload.name, sort_order=payload.sort_order))


@router.get("/{environment_id}", status_code=status.HTTP_200_OK)
def get_environment(environment_id: UUID, repository: Repository = Depends(get_repository)) -> dict:
    return serialize_environment(_get_environment_or_404(repository, environment_id))


@router.patch("/{environment_id}", status_code=status.HTTP_200_OK)
def patch_environment(
    environment_id: UUID,
    payload: EnvironmentUpdateRequest,
    repository: Repository = Depends(get_repository),
) -> dict:
    environment = _get_environment_or_404(repository, environment_id)
    return serialize_environment(update_environment(repository, environment, payload.model_dump(exclude_unset=True)))


@router.delete("/{environment_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_environment_endpoint(environment_id: UUID, repository: Repository = Depends(get_repository)) -> None:
    delete_environment(repository, _get_environment_or_404(repository, environment_id))
