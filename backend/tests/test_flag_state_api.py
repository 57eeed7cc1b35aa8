from datetime import UTC, datetime, timedelta

from fastapi.testclient import TestClient

from app.application.services.api_key_service import create_api_key, replace_environment_grants
from app.application.services.environment_service import create_environment
from app.application.services.flag_service import create_flag, set_environment_value


def _seed(repository):
    production = create_environment(repository, name="production")
    staging = create_environment(repository, name="staging")

    checkout = create_flag(repository, name="new_checkout", flag_type="SWITCH")
    limit = create_flag(repository, name="rate_limit", flag_type="INTEGER")
    ratio = create_flag(repository, name="sample_ratio", flag_type="FLOAT")
    banner = create_flag(repository, name="banner", flag_type="STRING")
    create_flag(repository, name="unconfigured", flag_type="SWITCH")

    now = datetime.now(UTC)
    set_environment_value(repository, checkout, production, value="true")
    set_environment_value(repository, limit, production, value="100", start_datetime=now - timedelta(days=1))
    set_environment_value(repository, ratio, production, value="0.25")
    set_environment_value(repository, banner, production, value="Sale!", end_datetime=now - timedelta(hours=1))
    set_environment_value(repository, checkout, staging, value=None)

    open_key = create_api_key(repository, description="open")
    staging_key = create_api_key(repository, description="staging only")
    replace_environment_grants(repository, staging_key, [staging.id])
    return {"Authorization": f"Bearer {open_key.token}"}, {"Authorization": f"Bearer {staging_key.token}"}


def test_single_flag_returns_bare_scalar(client: TestClient, repository):
    open_headers, _ = _seed(repository)

    response = client.get("/flag/production/new_checkout", headers=open_headers)
    assert response.status_code == 200
    assert response.json() is True

    assert client.get("/flag/production/rate_limit", headers=open_headers).json() == 100
    assert client.get("/flag/production/sample_ratio", headers=open_headers).json() == 0.25
    assert client.get("/flag/production/banner", headers=open_headers).json() is None
    assert client.get("/flag/staging/new_checkout", headers=open_headers).json() is False
    assert client.get("/flag/staging/rate_limit", headers=open_headers).json() is None


def test_unknown_flag_returns_null(client: TestClient, repository):
    open_headers, _ = _seed(repository)

    response = client.get("/flag/production/does_not_exist", headers=open_headers)
    assert response.status_code == 200
    assert response.json() is None


def test_all_flags_maps_names_to_values(client: TestClient, repository):
    open_headers, _ = _seed(repository)

    response = client.get("/all-flags/production", headers=open_headers)
    assert response.status_code == 200
    assert response.json() == {
        "banner": None,
        "new_checkout": True,
        "rate_limit": 100,
        "sample_ratio": 0.25,
        "unconfigured": None,
    }


def test_get_flags_includes_type_and_schedule(client: TestClient, repository):
    open_headers, _ = _seed(repository)

    response = client.get("/get-flags/production", headers=open_headers)
    assert response.status_code == 200
    details = {item["name"]: item for item in response.json()}
    assert details["rate_limit"]["type"] == "INTEGER"
    assert details["rate_limit"]["value"] == 100
    assert details["rate_limit"]["start_datetime"] is not None
    assert details["rate_limit"]["end_datetime"] is None
    assert details["unconfigured"] == {
        "name": "unconfigured",
        "type": "SWITCH",
        "value": None,
        "start_datetime": None,
        "end_datetime": None,
    }


def test_auth_failures_are_generic_401(client: TestClient, repository):
    _, staging_headers = _seed(repository)

    for headers in ({}, {"Authorization": "Basic abc"}, {"Authorization": "Bearer wrong"}, staging_headers):
        response = client.get("/flag/production/new_checkout", headers=headers)
        assert response.status_code == 401
        body = response.json()
        assert body["error_code"] == "unauthorized"
        assert body["message"] == "Unauthorized"
        assert body["trace_id"]


def test_restricted_key_reads_its_environment(client: TestClient, repository):
    _, staging_headers = _seed(repository)

    response = client.get("/all-flags/staging", headers=staging_headers)
    assert response.status_code == 200
    assert response.json()["new_checkout"] is False


def test_unknown_environment(client: TestClient, repository):
    open_headers, staging_headers = _seed(repository)

    response = client.get("/all-flags/qa", headers=open_headers)
    assert response.status_code == 404
    assert response.json()["error_code"] == "environment_not_found"

    assert client.get("/all-flags/qa", headers=staging_headers).status_code == 401


def test_request_id_is_echoed(client: TestClient, repository):
    open_headers, _ = _seed(repository)

    response = client.get("/flag/production/new_checkout", headers={**open_headers, "X-Request-ID": "req-123"})
    assert response.headers["X-Request-ID"] == "req-123"
