from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from app.application.services.api_key_service import (
    create_api_key,
    delete_api_key,
    granted_environment_ids,
    replace_environment_grants,
)
from app.application.services.flag_value_resolver import format_datetime_iso8601
from app.domain.models.api_key import ApiKey
from app.infrastructure.db.repository import Repository
from app.interfaces.api.deps import get_repository, require_admin

router = APIRouter(prefix="/admin/api-keys", tags=["admin"], dependencies=[Depends(require_admin)])


class ApiKeyCreateRequest(BaseModel):
    description: str = Field(min_length=1, max_length=255)
    environment_ids: list[UUID] = Field(default_factory=list)


class ApiKeyEnvironmentsRequest(BaseModel):
    environment_ids: list[UUID] = Field(default_factory=list)


def serialize_api_key(api_key: ApiKey, environment_ids: list[UUID], *, include_token: bool = False) -> dict:
    payload = {
        "id": str(api_key.id),
        "description": api_key.description,
        "token_preview": f"{api_key.token[:6]}...",
        "environment_ids": [str(environment_id) for environment_id in environment_ids],
        "created_at": format_datetime_iso8601(api_key.created_at),
    }
    if include_token:
        payload["token"] = api_key.token
    return payload


def _get_api_key_or_404(repository: Repository, api_key_id: UUID) -> ApiKey:
    api_key = repository.get("ApiKey", api_key_id)
    if api_key is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="API key not found")
    return api_key


@router.get("", status_code=status.HTTP_200_OK)
def list_api_keys(repository: Repository = Depends(get_repository)) -> dict:
    return {
        "items": [
            serialize_api_key(api_key, granted_environment_ids(repository, api_key))
            for api_key in repository.find("ApiKey")
        ]
    }


@router.post("", status_code=status.HTTP_201_CREATED)
def create_api_key_endpoint(payload: ApiKeyCreateRequest, repository: Repository = Depends(get_repository)) -> dict:
    for environment_id in payload.environment_ids:
        if repository.get("Environment", environment_id) is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Environment not found")
    api_key = create_api_key(repository, description=payload.description)
    environment_ids = replace_environment_grants(repository, api_key, payload.environment_ids)
    return serialize_api_key(api_key, environment_ids, include_token=True)


@router.put("/{api_key_id}/environments", status_code=status.HTTP_200_OK)
def put_api_key_environments(
    api_key_id: UUID,
    payload: ApiKeyEnvironmentsRequest,
    repository: Repository = Depends(get_repository),
) -> dict:
    api_key = _get_api_key_or_404(repository, api_key_id)
    environment_ids = replace_environment_grants(repository, api_key, payload.environment_ids)
    return serialize_api_key(api_key, environment_ids)


@router.delete("/{api_key_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_api_key_endpoint(api_key_id: UUID, repository: Repository = Depends(get_repository)) -> None:
    delete_api_key(repository, _get_api_key_or_404(repository, api_key_id))
