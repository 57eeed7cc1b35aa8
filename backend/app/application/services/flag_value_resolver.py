from __future__ import annotations

import math
import re
from datetime import UTC, datetime
from typing import Any

from app.domain.models.environment_value import EnvironmentValue
from app.domain.models.flag import FlagType

_NUMERIC_PREFIX_PATTERN = re.compile(r"^\s*[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")
_INTEGER_PATTERN = re.compile(r"^\s*[+-]?\d+$")
_SWITCH_TRUE = {"true", "1"}
_SWITCH_FALSE = {"false", "0"}


def as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def _leading_number(value: str) -> float:
    # Malformed numbers degrade to zero instead of failing the read.
    match = _NUMERIC_PREFIX_PATTERN.match(value)
    if match is None:
        return 0.0
    number = float(match.group(0))
    if not math.isfinite(number):
        return 0.0
    return number


def _to_int(value: str) -> int:
    match = _NUMERIC_PREFIX_PATTERN.match(value)
    if match is not None and _INTEGER_PATTERN.match(match.group(0)):
        return int(match.group(0))
    return int(_leading_number(value))


class FlagResolver:
    """Computes the typed value a flag has in one environment at one instant.

    The resolver holds no state and does no I/O; callers fetch the
    ``EnvironmentValue`` row (or learn it does not exist) and pass it in.
    """

    @staticmethod
    def inactive_value(flag_type: str) -> bool | None:
        if flag_type == FlagType.SWITCH.value:
            return False
        return None

    @staticmethod
    def is_value_active(env_value: EnvironmentValue, now: datetime) -> bool:
        current = as_utc(now)
        start = as_utc(env_value.start_datetime)
        end = as_utc(env_value.end_datetime)
        if start is not None and start > current:
            return False
        if end is not None and end < current:
            return False
        return True

    @staticmethod
    def cast_value(value: str | None, flag_type: str) -> Any:
        if value is None:
            return None
        if flag_type == FlagType.SWITCH.value:
            if value in _SWITCH_TRUE:
                return True
            if value in _SWITCH_FALSE:
                return False
            return bool(value)
        if flag_type == FlagType.INTEGER.value:
            return _to_int(value)
        if flag_type == FlagType.FLOAT.value:
            return _leading_number(value)
        return value

    def resolve(self, flag_type: str, env_value: EnvironmentValue | None, now: datetime | None = None) -> Any:
        if env_value is None:
            return None
        if env_value.value is None:
            return self.inactive_value(flag_type)
        if not self.is_value_active(env_value, now or datetime.now(UTC)):
            return self.inactive_value(flag_type)
        return self.cast_value(env_value.value, flag_type)


def is_numeric_value(value: str) -> bool:
    """True when ``value`` reads back as exactly the number it spells."""
    if _NUMERIC_PREFIX_PATTERN.fullmatch(value) is None:
        return False
    return math.isfinite(float(value))


def is_integer_value(value: str) -> bool:
    return _INTEGER_PATTERN.fullmatch(value) is not None


def format_datetime_iso8601(value: datetime | None) -> str | None:
    normalized = as_utc(value)
    if normalized is None:
        return None
    return normalized.isoformat()
