"""Entity repository used by the resolver, access evaluator and dispatcher.

Entities are addressed by name (``"Flag"``, ``"EnvironmentValue"`` ...) and
filtered with an exact-match map. A key may carry a comparison operator
suffix, e.g. ``{"start_datetime <=": now}``; a list or tuple value means IN.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Protocol
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.domain.models.api_key import ApiKey
from app.domain.models.api_key_environment import ApiKeyEnvironment
from app.domain.models.environment import Environment
from app.domain.models.environment_value import EnvironmentValue
from app.domain.models.flag import Flag
from app.domain.models.webhook import Webhook

logger = logging.getLogger(__name__)

ENTITY_MODELS: dict[str, type] = {
    "Flag": Flag,
    "Environment": Environment,
    "EnvironmentValue": EnvironmentValue,
    "ApiKey": ApiKey,
    "ApiKeyEnvironment": ApiKeyEnvironment,
    "Webhook": Webhook,
}

DEFAULT_ORDERING: dict[str, tuple[str, ...]] = {
    "Flag": ("name",),
    "Environment": ("sort_order", "name"),
    "ApiKey": ("description",),
    "Webhook": ("name",),
}

_OPERATORS = {
    "=": lambda column, value: column == value,
    "!=": lambda column, value: column != value,
    "<": lambda column, value: column < value,
    "<=": lambda column, value: column <= value,
    ">": lambda column, value: column > value,
    ">=": lambda column, value: column >= value,
}


class UnknownEntityError(LookupError):
    pass


class Repository(Protocol):
    def find(self, entity_name: str, filters: Mapping[str, Any] | None = None) -> list[Any]:
        ...

    def get(self, entity_name: str, entity_id: UUID) -> Any | None:
        ...

    def save(self, entity_name: str, entity: Any) -> Any:
        ...

    def delete(self, entity_name: str, entity_id: UUID) -> bool:
        ...


def _model_for(entity_name: str) -> type:
    model = ENTITY_MODELS.get(entity_name)
    if model is None:
        raise UnknownEntityError(f"Unknown entity '{entity_name}'")
    return model


def _split_filter_key(key: str) -> tuple[str, str]:
    field, _, operator = key.strip().partition(" ")
    operator = operator.strip() or "="
    if operator not in _OPERATORS:
        raise ValueError(f"Unsupported filter operator '{operator}' for '{field}'")
    return field, operator


class SqlAlchemyRepository:
    def __init__(self, db: Session) -> None:
        self.db = db

    def find(self, entity_name: str, filters: Mapping[str, Any] | None = None) -> list[Any]:
        model = _model_for(entity_name)
        statement = select(model)
        for key, value in (filters or {}).items():
            field, operator = _split_filter_key(key)
            column = getattr(model, field, None)
            if column is None:
                raise ValueError(f"Unknown field '{field}' for entity '{entity_name}'")
            if isinstance(value, (list, tuple, set)):
                if operator == "=":
                    statement = statement.where(column.in_(list(value)))
                elif operator == "!=":
                    statement = statement.where(column.not_in(list(value)))
                else:
                    raise ValueError(f"Operator '{operator}' does not accept a list for '{field}'")
            elif value is None and operator in {"=", "!="}:
                statement = statement.where(column.is_(None) if operator == "=" else column.is_not(None))
            else:
                statement = statement.where(_OPERATORS[operator](column, value))
        for field in DEFAULT_ORDERING.get(entity_name, ()):
            statement = statement.order_by(getattr(model, field).asc())
        return list(self.db.execute(statement).scalars().all())

    def get(self, entity_name: str, entity_id: UUID) -> Any | None:
        model = _model_for(entity_name)
        if entity_id is None:
            return None
        return self.db.get(model, entity_id)

    def save(self, entity_name: str, entity: Any) -> Any:
        model = _model_for(entity_name)
        if not isinstance(entity, model):
            raise TypeError(f"Expected {model.__name__} for entity '{entity_name}'")
        self.db.add(entity)
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(entity)
        return entity

    def delete(self, entity_name: str, entity_id: UUID) -> bool:
        entity = self.get(entity_name, entity_id)
        if entity is None:
            return False
        self.db.delete(entity)
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        logger.debug("repository_delete entity=%s id=%s", entity_name, entity_id)
        return True
