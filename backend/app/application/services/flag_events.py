"""Serialisable snapshots of flag state handed from the write path to webhook dispatch.

Snapshots are taken at write time so that a dispatch running later in a
worker still describes the flag as it was when the change committed, and so
that a deleted flag can still be described at all.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from app.application.services.flag_value_resolver import format_datetime_iso8601
from app.domain.models.environment import Environment
from app.domain.models.environment_value import EnvironmentValue
from app.domain.models.flag import Flag
from app.infrastructure.db.repository import Repository


@dataclass
class EnvironmentSnapshot:
    name: str
    value: str | None = None
    start_datetime: str | None = None
    end_datetime: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "value": self.value,
            "start_datetime": self.start_datetime,
            "end_datetime": self.end_datetime,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any] | None) -> EnvironmentSnapshot | None:
        if payload is None:
            return None
        return cls(
            name=str(payload.get("name") or ""),
            value=payload.get("value"),
            start_datetime=payload.get("start_datetime"),
            end_datetime=payload.get("end_datetime"),
        )

    @classmethod
    def from_value(cls, environment: Environment, env_value: EnvironmentValue) -> EnvironmentSnapshot:
        return cls(
            name=environment.name,
            value=env_value.value,
            start_datetime=format_datetime_iso8601(env_value.start_datetime),
            end_datetime=format_datetime_iso8601(env_value.end_datetime),
        )


@dataclass
class FlagSnapshot:
    id: str | None
    name: str
    type: str
    description: str | None = None
    environments: list[EnvironmentSnapshot] = field(default_factory=list)

    def to_context(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type,
            "description": self.description,
            "environments": [environment.to_dict() for environment in self.environments],
        }

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, **self.to_context()}

    @classmethod
    def from_dict(cls, payload: dict[str, Any] | None) -> FlagSnapshot | None:
        if payload is None:
            return None
        environments = [EnvironmentSnapshot.from_dict(item) for item in payload.get("environments") or []]
        return cls(
            id=payload.get("id"),
            name=str(payload.get("name") or ""),
            type=str(payload.get("type") or ""),
            description=payload.get("description"),
            environments=[item for item in environments if item is not None],
        )


@dataclass
class FlagChangeEvent:
    event_type: str
    flag: FlagSnapshot
    previous: FlagSnapshot | None = None
    changed_environment: EnvironmentSnapshot | None = None
    previous_environment: EnvironmentSnapshot | None = None
    occurred_at: str = field(default_factory=lambda: datetime.now(UTC).isoformat())

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_type": self.event_type,
            "flag": self.flag.to_dict(),
            "previous": self.previous.to_dict() if self.previous else None,
            "changed_environment": self.changed_environment.to_dict() if self.changed_environment else None,
            "previous_environment": self.previous_environment.to_dict() if self.previous_environment else None,
            "occurred_at": self.occurred_at,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> FlagChangeEvent:
        flag = FlagSnapshot.from_dict(payload.get("flag"))
        if flag is None:
            raise ValueError("Flag change event is missing the flag snapshot")
        return cls(
            event_type=str(payload["event_type"]),
            flag=flag,
            previous=FlagSnapshot.from_dict(payload.get("previous")),
            changed_environment=EnvironmentSnapshot.from_dict(payload.get("changed_environment")),
            previous_environment=EnvironmentSnapshot.from_dict(payload.get("previous_environment")),
            occurred_at=str(payload.get("occurred_at") or datetime.now(UTC).isoformat()),
        )


def snapshot_environments(repository: Repository, flag_id) -> list[EnvironmentSnapshot]:
    snapshots: list[EnvironmentSnapshot] = []
    for env_value in repository.find("EnvironmentValue", {"flag_id": flag_id}):
        environment = repository.get("Environment", env_value.environment_id)
        if environment is not None:
            snapshots.append(EnvironmentSnapshot.from_value(environment, env_value))
    snapshots.sort(key=lambda item: item.name)
    return snapshots


def snapshot_flag(repository: Repository, flag: Flag) -> FlagSnapshot:
    return FlagSnapshot(
        id=str(flag.id) if flag.id is not None else None,
        name=flag.name,
        type=str(flag.type),
        description=flag.description,
        environments=snapshot_environments(repository, flag.id) if flag.id is not None else [],
    )
