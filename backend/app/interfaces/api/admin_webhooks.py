from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from app.application.services.flag_value_resolver import format_datetime_iso8601
from app.application.services.webhook_dispatcher import ChangeDispatcher
from app.application.services.webhook_service import create_webhook, delete_webhook, update_webhook
from app.domain.models.webhook import Webhook
from app.infrastructure.db.repository import Repository
from app.integrations.webhook_client import WebhookClient
from app.interfaces.api.deps import get_repository, get_webhook_client, require_admin

router = APIRouter(prefix="/admin/webhooks", tags=["admin"], dependencies=[Depends(require_admin)])


class WebhookCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    url: str = Field(min_length=1, max_length=2048)
    event_types: list[str]
    headers: dict[str, str] = Field(default_factory=dict)
    payload_template: str | None = None
    is_active: bool = True
    include_environment_changes: bool = False


class WebhookUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    url: str | None = Field(default=None, min_length=1, max_length=2048)
    event_types: list[str] | None = None
    headers: dict[str, str] | None = None
    payload_template: str | None = None
    is_active: bool | None = None
    include_environment_changes: bool | None = None


class WebhookTestRequest(BaseModel):
    flag_id: UUID


def serialize_webhook(webhook: Webhook) -> dict:
    return {
        "id": str(webhook.id),
        "name": webhook.name,
        "url": webhook.url,
        "is_active": bool(webhook.is_active),
        "headers": dict(webhook.headers or {}),
        "payload_template": webhook.payload_template,
        "event_types": list(webhook.event_types or []),
        "include_environment_changes": bool(webhook.include_environment_changes),
        "created_at": format_datetime_iso8601(webhook.created_at),
        "updated_at": format_datetime_iso8601(webhook.updated_at),
    }


def _get_webhook_or_404(repository: Repository, webhook_id: UUID) -> Webhook:
    webhook = repository.get("Webhook", webhook_id)
    if webhook is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Webhook not found")
    return webhook


@router.get("", status_code=status.HTTP_200_OK)
def list_webhooks(repository: Repository = Depends(get_repository)) -> dict:
    return {"items": [serialize_webhook(webhook) for webhook in repository.find("Webhook")]}


@router.post("", status_code=status.HTTP_201_CREATED)
def create_webhook_endpoint(payload: WebhookCreateRequest, repository: Repository = Depends(get_repository)) -> dict:
    return serialize_webhook(create_webhook(repository, payload.model_dump()))


@router.get("/{webhook_id}", status_code=status.HTTP_200_OK)
def get_webhook(webhook_id: UUID, repository: Repository = Depends(get_repository)) -> dict:
    return serialize_webhook(_get_webhook_or_404(repository, webhook_id))


@router.patch("/{webhook_id}", status_code=status.HTTP_200_OK)
def patch_webhook(
    webhook_id: UUID,
    payload: WebhookUpdateRequest,
    repository: Repository = Depends(get_repository),
) -> dict:
    webhook = _get_webhook_or_404(repository, webhook_id)
    return serialize_webhook(update_webhook(repository, webhook, payload.model_dump(exclude_unset=True)))


@router.delete("/{webhook_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_webhook_endpoint(webhook_id: UUID, repository: Repository = Depends(get_repository)) -> None:
    delete_webhook(repository, _get_webhook_or_404(repository, webhook_id))


@router.post("/{webhook_id}/test", status_code=status.HTTP_200_OK)
async def test_webhook(
    webhook_id: UUID,
    payload: WebhookTestRequest,
    repository: Repository = Depends(get_repository),
    client: WebhookClient = Depends(get_webhook_client),
) -> dict:
    webhook = _get_webhook_or_404(repository, webhook_id)
    if not webhook.is_active:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error_code": "webhook_inactive", "message": "Webhook is not active"},
        )
    flag = repository.get("Flag", payload.flag_id)
    if flag is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Flag not found")

    result = await ChangeDispatcher.from_settings(repository, client).dispatch_test(webhook, flag)
    if not result.success:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={"error_code": "webhook_delivery_failed", "message": result.error or "Webhook delivery failed"},
        )
    return {
        "success": True,
        "status_code": result.status_code,
        "response_body": result.body,
    }
