from datetime import UTC, datetime, timedelta

import pytest

from app.application.services.flag_value_resolver import (
    FlagResolver,
    format_datetime_iso8601,
    is_integer_value,
    is_numeric_value,
)
from app.domain.models.environment_value import EnvironmentValue

NOW = datetime(2026, 5, 1, 12, 0, tzinfo=UTC)


def _value(value, start=None, end=None) -> EnvironmentValue:
    return EnvironmentValue(value=value, start_datetime=start, end_datetime=end)


@pytest.mark.parametrize("flag_type", ["SWITCH", "INTEGER", "FLOAT", "STRING"])
def test_missing_row_resolves_to_none_for_every_type(flag_type: str):
    assert FlagResolver().resolve(flag_type, None, NOW) is None


def test_null_value_resolves_to_inactive_value():
    resolver = FlagResolver()
    assert resolver.resolve("SWITCH", _value(None), NOW) is False
    assert resolver.resolve("INTEGER", _value(None), NOW) is None
    assert resolver.resolve("STRING", _value(None), NOW) is None


def test_switch_true_without_bounds_is_true():
    assert FlagResolver().resolve("SWITCH", _value("true"), NOW) is True


def test_scheduled_integer_is_inactive():
    env_value = _value("42", start=NOW + timedelta(hours=1))
    assert FlagResolver().resolve("INTEGER", env_value, NOW) is None


def test_expired_string_is_inactive():
    env_value = _value("hello", end=NOW - timedelta(hours=1))
    assert FlagResolver().resolve("STRING", env_value, NOW) is None


def test_expired_switch_resolves_to_false():
    env_value = _value("true", end=NOW - timedelta(minutes=1))
    assert FlagResolver().resolve("SWITCH", env_value, NOW) is False


def test_bounds_are_inclusive():
    env_value = _value("7", start=NOW, end=NOW)
    assert FlagResolver().resolve("INTEGER", env_value, NOW) == 7


def test_naive_bounds_are_treated_as_utc():
    env_value = _value("on", start=datetime(2026, 5, 1, 11, 0), end=datetime(2026, 5, 1, 13, 0))
    assert FlagResolver().resolve("STRING", env_value, NOW) == "on"


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("true", True), ("1", True), ("false", False), ("0", False), ("yes", True), ("", False)],
)
def test_switch_casting(raw: str, expected: bool):
    assert FlagResolver.cast_value(raw, "SWITCH") is expected


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("42", 42), ("-3", -3), ("12abc", 12), ("abc", 0), ("3.9", 3)],
)
def test_integer_casting_is_permissive(raw: str, expected: int):
    result = FlagResolver.cast_value(raw, "INTEGER")
    assert result == expected
    assert isinstance(result, int)


@pytest.mark.parametrize(("raw", "expected"), [("3.14", 3.14), ("2", 2.0), ("1e3", 1000.0), ("x", 0.0)])
def test_float_casting_is_permissive(raw: str, expected: float):
    result = FlagResolver.cast_value(raw, "FLOAT")
    assert result == pytest.approx(expected)
    assert isinstance(result, float)


def test_string_and_unknown_types_pass_through():
    assert FlagResolver.cast_value("hello", "STRING") == "hello"
    assert FlagResolver.cast_value("raw", "MYSTERY") == "raw"


def test_numeric_helpers():
    assert is_numeric_value("1.5")
    assert is_numeric_value("-2e3")
    assert not is_numeric_value("one")
    for rejected in ("1_000.5", "inf", "nan", "1e400", "1.5abc"):
        assert not is_numeric_value(rejected)
    assert is_integer_value("42") and is_integer_value("-7")
    for rejected in ("1_000", "1.0", "1e3", "42\n"):
        assert not is_integer_value(rejected)
    assert format_datetime_iso8601(None) is None
    assert format_datetime_iso8601(datetime(2026, 1, 1, 8, 30)) == "2026-01-01T08:30:00+00:00"
