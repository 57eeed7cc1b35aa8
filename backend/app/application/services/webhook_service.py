import logging
from typing import Any

from app.application.services.flag_service import DuplicateNameError
from app.application.services.webhook_validation import (
    WebhookValidationError,
    validate_event_types,
    validate_headers,
    validate_webhook_url,
)
from app.domain.models.webhook import Webhook
from app.infrastructure.db.repository import Repository

logger = logging.getLogger(__name__)

WEBHOOK_FIELDS = (
    "name",
    "url",
    "is_active",
    "headers",
    "payload_template",
    "event_types",
    "include_environment_changes",
)


def _normalize_name(name: str | None) -> str:
    normalized = (name or "").strip()
    if not normalized:
        raise WebhookValidationError("Webhook name is required")
    return normalized


def _ensure_unique_name(repository: Repository, name: str, current_id=None) -> None:
    for existing in repository.find("Webhook", {"name": name}):
        if existing.id != current_id:
            raise DuplicateNameError(f"Webhook '{name}' already exists")


def _apply(webhook: Webhook, values: dict[str, Any]) -> None:
    if "name" in values:
        webhook.name = _normalize_name(values["name"])
    if "url" in values:
        webhook.url = validate_webhook_url(values["url"])
    if "event_types" in values:
        webhook.event_types = validate_event_types(values["event_types"])
    if "headers" in values:
        webhook.headers = validate_headers(values["headers"])
    if "payload_template" in values:
        template = values["payload_template"]
        webhook.payload_template = template if template and template.strip() else None
    if values.get("is_active") is not None:
        webhook.is_active = bool(values["is_active"])
    if values.get("include_environment_changes") is not None:
        webhook.include_environment_changes = bool(values["include_environment_changes"])


def create_webhook(repository: Repository, values: dict[str, Any]) -> Webhook:
    for required in ("name", "url", "event_types"):
        if required not in values:
            raise WebhookValidationError(f"'{required}' is required")
    webhook = Webhook(headers={}, is_active=True, include_environment_changes=False)
    _apply(webhook, {key: values[key] for key in WEBHOOK_FIELDS if key in values})
    _ensure_unique_name(repository, webhook.name)
    webhook = repository.save("Webhook", webhook)
    logger.info("webhook_created webhook=%s events=%s", webhook.name, ",".join(webhook.event_types))
    return webhook


def update_webhook(repository: Repository, webhook: Webhook, changes: dict[str, Any]) -> Webhook:
    _apply(webhook, {key: changes[key] for key in WEBHOOK_FIELDS if key in changes})
    _ensure_unique_name(repository, webhook.name, current_id=webhook.id)
    webhook = repository.save("Webhook", webhook)
    logger.info("webhook_updated webhook=%s active=%s", webhook.name, webhook.is_active)
    return webhook


def delete_webhook(repository: Repository, webhook: Webhook) -> bool:
    name = webhook.name
    deleted = repository.delete("Webhook", webhook.id)
    if deleted:
        logger.info("webhook_deleted webhook=%s", name)
    return deleted
