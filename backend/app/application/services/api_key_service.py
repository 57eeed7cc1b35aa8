import logging
from collections.abc import Iterable
from uuid import UUID

from app.application.services.flag_service import DuplicateNameError, FlagValidationError
from app.core.security import generate_api_key
from app.domain.models.api_key import ApiKey
from app.domain.models.api_key_environment import ApiKeyEnvironment
from app.infrastructure.db.repository import Repository, UnknownEntityError

logger = logging.getLogger(__name__)


def create_api_key(repository: Repository, *, description: str) -> ApiKey:
    """Create a key with a freshly generated token.

    Tokens are never regenerated; rotating a key means deleting it and
    creating a new one.
    """
    normalized = (description or "").strip()
    if not normalized:
        raise FlagValidationError("API key description is required")
    if repository.find("ApiKey", {"description": normalized}):
        raise DuplicateNameError(f"API key '{normalized}' already exists")
    api_key = repository.save("ApiKey", ApiKey(description=normalized, token=generate_api_key()))
    logger.info("api_key_created api_key_id=%s", api_key.id)
    return api_key


def granted_environment_ids(repository: Repository, api_key: ApiKey) -> list[UUID]:
    return [grant.environment_id for grant in repository.find("ApiKeyEnvironment", {"api_key_id": api_key.id})]


def replace_environment_grants(
    repository: Repository,
    api_key: ApiKey,
    environment_ids: Iterable[UUID],
) -> list[UUID]:
    wanted: list[UUID] = []
    for environment_id in environment_ids:
        if environment_id in wanted:
            continue
        if repository.get("Environment", environment_id) is None:
            raise UnknownEntityError(f"Environment '{environment_id}' not found")
        wanted.append(environment_id)

    # Add before removing: a key with zero grants is unrestricted.
    existing = repository.find("ApiKeyEnvironment", {"api_key_id": api_key.id})
    already_granted = {grant.environment_id for grant in existing}
    for environment_id in wanted:
        if environment_id not in already_granted:
            repository.save("ApiKeyEnvironment", ApiKeyEnvironment(api_key_id=api_key.id, environment_id=environment_id))
    for grant in existing:
        if grant.environment_id not in wanted:
            repository.delete("ApiKeyEnvironment", grant.id)
    logger.info("api_key_grants_replaced api_key_id=%s environments=%s", api_key.id, len(wanted))
    return wanted


def delete_api_key(repository: Repository, api_key: ApiKey) -> bool:
    api_key_id = api_key.id
    deleted = repository.delete("ApiKey", api_key_id)
    if deleted:
        logger.info("api_key_deleted api_key_id=%s", api_key_id)
    return deleted
