import logging
from typing import Any

from app.application.services.flag_service import DuplicateNameError, FlagValidationError
from app.domain.models.environment import Environment
from app.infrastructure.db.repository import Repository

logger = logging.getLogger(__name__)

ENVIRONMENT_NAME_MAX_LENGTH = 255


def _normalize_name(name: str | None) -> str:
    normalized = (name or "").strip()
    if not normalized:
        raise FlagValidationError("Environment name is required")
    if len(normalized) > ENVIRONMENT_NAME_MAX_LENGTH:
        raise FlagValidationError(f"Environment name must be at most {ENVIRONMENT_NAME_MAX_LENGTH} characters")
    if "/" in normalized:
        raise FlagValidationError("Environment name must not contain '/'")
    return normalized


def _ensure_unique_name(repository: Repository, name: str, current_id=None) -> None:
    for existing in repository.find("Environment", {"name": name}):
        if existing.id != current_id:
            raise DuplicateNameError(f"Environment '{name}' already exists")


def create_environment(repository: Repository, *, name: str, sort_order: int = 0) -> Environment:
    normalized = _normalize_name(name)
    _ensure_unique_name(repository, normalized)
    environment = repository.save("Environment", Environment(name=normalized, sort_order=sort_order))
    logger.info("environment_created environment=%s", environment.name)
    return environment


def update_environment(repository: Repository, environment: Environment, changes: dict[str, Any]) -> Environment:
    if changes.get("name") is not None:
        normalized = _normalize_name(changes["name"])
        _ensure_unique_name(repository, normalized, current_id=environment.id)
        environment.name = normalized
    if changes.get("sort_order") is not None:
        environment.sort_order = int(changes["sort_order"])
    environment = repository.save("Environment", environment)
    logger.info("environment_updated environment=%s", environment.name)
    return environment


def delete_environment(repository: Repository, environment: Environment) -> bool:
    name = environment.name
    deleted = repository.delete("Environment", environment.id)
    if deleted:
        logger.info("environment_deleted environment=%s", name)
    return deleted
