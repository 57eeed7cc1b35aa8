from __future__ import annotations

import logging
import re
from collections.abc import Callable
from datetime import datetime
from typing import Any

from app.application.services.flag_events import (
    EnvironmentSnapshot,
    FlagChangeEvent,
    snapshot_flag,
)
from app.application.services.flag_value_resolver import as_utc, is_integer_value, is_numeric_value
from app.core.config import settings
from app.domain.models.environment import Environment
from app.domain.models.environment_value import EnvironmentValue
from app.domain.models.flag import Flag, FlagType
from app.domain.models.webhook import WebhookEventType
from app.infrastructure.db.repository import Repository

logger = logging.getLogger(__name__)

ChangePublisher = Callable[[FlagChangeEvent], None]

FLAG_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")
FLAG_NAME_MAX_LENGTH = 255
FLAG_DESCRIPTION_MAX_LENGTH = 1024
FLAG_VALUE_MAX_LENGTH = 255
SWITCH_VALUES = {"true", "false", "1", "0"}


class FlagValidationError(ValueError):
    pass


class DuplicateNameError(ValueError):
    pass


def enqueue_flag_change(event: FlagChangeEvent) -> None:
    from workers.tasks import dispatch_flag_change

    dispatch_flag_change.apply_async(args=[event.to_dict()], queue=settings.webhooks_queue)
    logger.info("flag_change_enqueued event=%s flag=%s", event.event_type, event.flag.name)


def publish_change(publish: ChangePublisher | None, event: FlagChangeEvent) -> None:
    if publish is None:
        return
    try:
        publish(event)
    except Exception:
        logger.exception("flag_change_publish_failed event=%s flag=%s", event.event_type, event.flag.name)


def validate_flag_name(name: str | None) -> str:
    normalized = (name or "").strip()
    if not normalized:
        raise FlagValidationError("Flag name is required")
    if len(normalized) > FLAG_NAME_MAX_LENGTH:
        raise FlagValidationError(f"Flag name must be at most {FLAG_NAME_MAX_LENGTH} characters")
    if not FLAG_NAME_PATTERN.match(normalized):
        raise FlagValidationError("Flag name may only contain letters, digits, underscores and hyphens")
    return normalized


def validate_flag_type(flag_type: str | None) -> str:
    try:
        return FlagType(str(flag_type or "").upper()).value
    except ValueError as exc:
        raise FlagValidationError(f"Unknown flag type '{flag_type}'") from exc


def validate_flag_value(flag_type: str, value: str | None) -> str | None:
    if value is None:
        return None
    if len(value) > FLAG_VALUE_MAX_LENGTH:
        raise FlagValidationError(f"Value must be at most {FLAG_VALUE_MAX_LENGTH} characters")
    if flag_type == FlagType.SWITCH.value and value.lower() not in SWITCH_VALUES:
        raise FlagValidationError("SWITCH values must be one of true, false, 1, 0")
    if flag_type == FlagType.INTEGER.value and not is_integer_value(value):
        raise FlagValidationError("INTEGER values must be whole numbers")
    if flag_type == FlagType.FLOAT.value and not is_numeric_value(value):
        raise FlagValidationError("FLOAT values must be numeric")
    if flag_type == FlagType.SWITCH.value:
        return value.lower()
    return value


def _ensure_unique_name(repository: Repository, name: str, current_id=None) -> None:
    for existing in repository.find("Flag", {"name": name}):
        if existing.id != current_id:
            raise DuplicateNameError(f"Flag '{name}' already exists")


def _validate_description(description: str | None) -> str | None:
    if description is not None and len(description) > FLAG_DESCRIPTION_MAX_LENGTH:
        raise FlagValidationError(f"Description must be at most {FLAG_DESCRIPTION_MAX_LENGTH} characters")
    return description


def create_flag(
    repository: Repository,
    *,
    name: str,
    flag_type: str,
    description: str | None = None,
    publish: ChangePublisher | None = None,
) -> Flag:
    normalized_name = validate_flag_name(name)
    _ensure_unique_name(repository, normalized_name)
    flag = Flag(
        name=normalized_name,
        type=validate_flag_type(flag_type),
        description=_validate_description(description),
    )
    flag = repository.save("Flag", flag)
    logger.info("flag_created flag=%s type=%s", flag.name, flag.type)
    publish_change(
        publish,
        FlagChangeEvent(event_type=WebhookEventType.CREATED.value, flag=snapshot_flag(repository, flag)),
    )
    return flag


def update_flag(
    repository: Repository,
    flag: Flag,
    changes: dict[str, Any],
    *,
    publish: ChangePublisher | None = None,
) -> Flag:
    """Apply ``changes`` to the description and announce the update.

    Name and type are fixed at creation; stored values are read against them.
    """
    previous = snapshot_flag(repository, flag)
    if changes.get("name") is not None and validate_flag_name(changes["name"]) != flag.name:
        raise FlagValidationError("Flag name cannot be changed")
    if changes.get("type") is not None and validate_flag_type(changes["type"]) != flag.type:
        raise FlagValidationError("Flag type cannot be changed")
    if "description" in changes:
        flag.description = _validate_description(changes["description"])
    flag = repository.save("Flag", flag)
    logger.info("flag_updated flag=%s type=%s", flag.name, flag.type)
    publish_change(
        publish,
        FlagChangeEvent(
            event_type=WebhookEventType.UPDATED.value,
            flag=snapshot_flag(repository, flag),
            previous=previous,
        ),
    )
    return flag


def delete_flag(repository: Repository, flag: Flag, *, publish: ChangePublisher | None = None) -> bool:
    snapshot = snapshot_flag(repository, flag)
    deleted = repository.delete("Flag", flag.id)
    if not deleted:
        return False
    logger.info("flag_deleted flag=%s", snapshot.name)
    publish_change(publish, FlagChangeEvent(event_type=WebhookEventType.DELETED.value, flag=snapshot))
    return True


def set_environment_value(
    repository: Repository,
    flag: Flag,
    environment: Environment,
    *,
    value: str | None,
    start_datetime: datetime | None = None,
    end_datetime: datetime | None = None,
    publish: ChangePublisher | None = None,
) -> EnvironmentValue:
    start_datetime = as_utc(start_datetime)
    end_datetime = as_utc(end_datetime)
    if start_datetime is not None and end_datetime is not None and end_datetime < start_datetime:
        raise FlagValidationError("end_datetime must not be before start_datetime")
    normalized_value = validate_flag_value(flag.type, value)

    existing = repository.find("EnvironmentValue", {"flag_id": flag.id, "environment_id": environment.id})
    env_value = existing[0] if existing else None
    previous_environment = EnvironmentSnapshot.from_value(environment, env_value) if env_value else None
    if env_value is None:
        env_value = EnvironmentValue(flag_id=flag.id, environment_id=environment.id)
    env_value.value = normalized_value
    env_value.start_datetime = start_datetime
    env_value.end_datetime = end_datetime
    env_value = repository.save("EnvironmentValue", env_value)
    logger.info("environment_value_saved flag=%s environment=%s", flag.name, environment.name)

    publish_change(
        publish,
        FlagChangeEvent(
            event_type=WebhookEventType.ENVIRONMENT_VALUE_UPDATED.value,
            flag=snapshot_flag(repository, flag),
            changed_environment=EnvironmentSnapshot.from_value(environment, env_value),
            previous_environment=previous_environment,
        ),
    )
    return env_value
