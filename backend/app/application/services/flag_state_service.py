"""Read path for flag state served to API keys."""

from datetime import UTC, datetime
from typing import Any

from app.application.services.flag_value_resolver import FlagResolver, format_datetime_iso8601
from app.domain.models.environment import Environment
from app.infrastructure.db.repository import Repository

_resolver = FlagResolver()


def _values_by_flag(repository: Repository, environment: Environment) -> dict:
    return {value.flag_id: value for value in repository.find("EnvironmentValue", {"environment_id": environment.id})}


def get_flag_state(repository: Repository, environment: Environment, flag_name: str, now: datetime | None = None) -> Any:
    flags = repository.find("Flag", {"name": flag_name})
    if not flags:
        return None
    flag = flags[0]
    values = repository.find("EnvironmentValue", {"flag_id": flag.id, "environment_id": environment.id})
    return _resolver.resolve(flag.type, values[0] if values else None, now or datetime.now(UTC))


def get_all_flag_values(repository: Repository, environment: Environment, now: datetime | None = None) -> dict[str, Any]:
    current = now or datetime.now(UTC)
    values = _values_by_flag(repository, environment)
    return {
        flag.name: _resolver.resolve(flag.type, values.get(flag.id), current)
        for flag in repository.find("Flag")
    }


def get_flag_details(
    repository: Repository, environment: Environment, now: datetime | None = None
) -> list[dict[str, Any]]:
    current = now or datetime.now(UTC)
    values = _values_by_flag(repository, environment)
    details: list[dict[str, Any]] = []
    for flag in repository.find("Flag"):
        env_value = values.get(flag.id)
        details.append(
            {
                "name": flag.name,
                "type": flag.type,
                "value": _resolver.resolve(flag.type, env_value, current),
                "start_datetime": format_datetime_iso8601(env_value.start_datetime) if env_value else None,
                "end_datetime": format_datetime_iso8601(env_value.end_datetime) if env_value else None,
            }
        )
    return details
