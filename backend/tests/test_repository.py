from datetime import UTC, datetime, timedelta

import pytest

from app.domain.models.environment import Environment
from app.domain.models.environment_value import EnvironmentValue
from app.domain.models.flag import Flag
from app.infrastructure.db.repository import UnknownEntityError


def test_find_supports_operators_and_lists(repository):
    for index, name in enumerate(["qa", "staging", "production"]):
        repository.save("Environment", Environment(name=name, sort_order=index))

    assert [env.name for env in repository.find("Environment")] == ["qa", "staging", "production"]
    assert [env.name for env in repository.find("Environment", {"sort_order >=": 1})] == ["staging", "production"]
    assert [env.name for env in repository.find("Environment", {"sort_order <": 1})] == ["qa"]
    assert [env.name for env in repository.find("Environment", {"name !=": "qa"})] == ["staging", "production"]
    assert [env.name for env in repository.find("Environment", {"name": ["qa", "production"]})] == ["qa", "production"]


def test_find_by_datetime_bound(repository):
    flag = repository.save("Flag", Flag(name="window", type="SWITCH"))
    env = repository.save("Environment", Environment(name="production"))
    start = datetime(2026, 1, 1, tzinfo=UTC)
    repository.save(
        "EnvironmentValue",
        EnvironmentValue(flag_id=flag.id, environment_id=env.id, value="true", start_datetime=start),
    )

    assert len(repository.find("EnvironmentValue", {"start_datetime <=": start + timedelta(days=1)})) == 1
    assert repository.find("EnvironmentValue", {"start_datetime >": start + timedelta(days=1)}) == []
    assert len(repository.find("EnvironmentValue", {"end_datetime": None})) == 1


def test_get_save_delete(repository):
    flag = repository.save("Flag", Flag(name="beta", type="STRING"))

    assert repository.get("Flag", flag.id).name == "beta"
    assert repository.delete("Flag", flag.id) is True
    assert repository.get("Flag", flag.id) is None
    assert repository.delete("Flag", flag.id) is False


def test_unknown_entities_and_fields(repository):
    with pytest.raises(UnknownEntityError):
        repository.find("Segment")
    with pytest.raises(ValueError):
        repository.find("Flag", {"colour": "blue"})
    with pytest.raises(ValueError):
        repository.find("Flag", {"name ~": "x"})
    with pytest.raises(TypeError):
        repository.save("Flag", Environment(name="wrong"))
