from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from app.application.services.flag_service import (
    ChangePublisher,
    create_flag,
    delete_flag,
    set_environment_value,
    update_flag,
)
from app.application.services.flag_value_resolver import format_datetime_iso8601
from app.domain.models.environment import Environment
from app.domain.models.environment_value import EnvironmentValue
from app.domain.models.flag import Flag, FlagType
from app.infrastructure.db.repository import Repository
from app.interfaces.api.deps import get_change_publisher, get_repository, require_admin

router = APIRouter(prefix="/admin/flags", tags=["admin"], dependencies=[Depends(require_admin)])


class FlagCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    type: FlagType
    description: str | None = Field(default=None, max_length=1024)


class FlagUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    type: FlagType | None = None
    description: str | None = Field(default=None, max_length=1024)


class EnvironmentValueRequest(BaseModel):
    value: str | None = Field(default=None, max_length=255)
    start_datetime: datetime | None = None
    end_datetime: datetime | None = None


def serialize_flag(flag: Flag) -> dict:
    return {
        "id": str(flag.id),
        "name": flag.name,
        "type": flag.type,
        "description": flag.description,
        "created_at": format_datetime_iso8601(flag.created_at),
        "updated_at": format_datetime_iso8601(flag.updated_at),
    }


def serialize_environment_value(env_value: EnvironmentValue, environment: Environment | None) -> dict:
    return {
        "id": str(env_value.id),
        "flag_id": str(env_value.flag_id),
        "environment_id": str(env_value.environment_id),
        "environment": environment.name if environment else None,
        "value": env_value.value,
        "start_datetime": format_datetime_iso8601(env_value.start_datetime),
        "end_datetime": format_datetime_iso8601(env_value.end_datetime),
    }


def _get_flag_or_404(repository: Repository, flag_id: UUID) -> Flag:
    flag = repository.get("Flag", flag_id)
    if flag is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Flag not found")
    return flag


@router.get("", status_code=status.HTTP_200_OK)
def list_flags(repository: Repository = Depends(get_repository)) -> dict:
    return {"items": [serialize_flag(flag) for flag in repository.find("Flag")]}


@router.post("", status_code=status.HTTP_201_CREATED)
def create_flag_endpoint(
    payload: FlagCreateRequest,
    repository: Repository = Depends(get_repository),
    publish: ChangePublisher = Depends(get_change_publisher),
) -> dict:
    flag = create_flag(
        repository,
        name=payload.name,
        flag_type=payload.type.value,
        description=payload.description,
        publish=publish,
    )
    return serialize_flag(flag)


@router.get("/{flag_id}", status_code=status.HTTP_200_OK)
def get_flag(flag_id: UUID, repository: Repository = Depends(get_repository)) -> dict:
    return serialize_flag(_get_flag_or_404(repository, flag_id))


@router.patch("/{flag_id}", status_code=status.HTTP_200_OK)
def patch_flag(
    flag_id: UUID,
    payload: FlagUpdateRequest,
    repository: Repository = Depends(get_repository),
    publish: ChangePublisher = Depends(get_change_publisher),
) -> dict:
    flag = _get_flag_or_404(repository, flag_id)
    changes = payload.model_dump(exclude_unset=True)
    if changes.get("type") is not None:
        changes["type"] = FlagType(changes["type"]).value
    return serialize_flag(update_flag(repository, flag, changes, publish=publish))


@router.delete("/{flag_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_flag_endpoint(
    flag_id: UUID,
    repository: Repository = Depends(get_repository),
    publish: ChangePublisher = Depends(get_change_publisher),
) -> None:
    flag = _get_flag_or_404(repository, flag_id)
    delete_flag(repository, flag, publish=publish)


@router.get("/{flag_id}/values", status_code=status.HTTP_200_OK)
def list_environment_values(flag_id: UUID, repository: Repository = Depends(get_repository)) -> dict:
    flag = _get_flag_or_404(repository, flag_id)
    items = [
        serialize_environment_value(env_value, repository.get("Environment", env_value.environment_id))
        for env_value in repository.find("EnvironmentValue", {"flag_id": flag.id})
    ]
    items.sort(key=lambda item: item["environment"] or "")
    return {"items": items}


@router.put("/{flag_id}/values/{environment_id}", status_code=status.HTTP_200_OK)
def put_environment_value(
    flag_id: UUID,
    environment_id: UUID,
    payload: EnvironmentValueRequest,
    repository: Repository = Depends(get_repository),
    publish: ChangePublisher = Depends(get_change_publisher),
) -> dict:
    flag = _get_flag_or_404(repository, flag_id)
    environment = repository.get("Environment", environment_id)
    if environment is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Environment not found")
    env_value = set_environment_value(
        repository,
        flag,
        environment,
        value=payload.value,
        start_datetime=payload.start_datetime,
        end_datetime=payload.end_datetime,
        publish=publish,
    )
    return serialize_environment_value(env_value, environment)
