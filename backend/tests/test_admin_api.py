import httpx
import pytest
from fastapi.testclient import TestClient

from app.interfaces.api.deps import get_webhook_client
from app.integrations.webhook_client import WebhookClient
from main import app


def _create_environment(client: TestClient, headers: dict, name: str, sort_order: int = 0) -> dict:
    response = client.post("/admin/environments", headers=headers, json={"name": name, "sort_order": sort_order})
    assert response.status_code == 201
    return response.json()


def _create_flag(client: TestClient, headers: dict, name: str, flag_type: str = "SWITCH") -> dict:
    response = client.post("/admin/flags", headers=headers, json={"name": name, "type": flag_type})
    assert response.status_code == 201
    return response.json()


def test_admin_token_is_required(client: TestClient):
    assert client.get("/admin/flags").status_code == 401
    response = client.get("/admin/flags", headers={"X-Admin-Token": "wrong"})
    assert response.status_code == 401
    assert response.json()["error_code"] == "unauthorized"


def test_empty_admin_token_disables_admin_api(client: TestClient, admin_headers: dict, monkeypatch):
    from app.core.config import settings

    monkeypatch.setattr(settings, "admin_api_token", "")
    assert client.get("/admin/flags", headers=admin_headers).status_code == 401
    assert client.get("/admin/flags", headers={"X-Admin-Token": ""}).status_code == 401


def test_flag_crud_publishes_change_events(client: TestClient, admin_headers: dict, published_events: list):
    flag = _create_flag(client, admin_headers, "new_checkout")
    assert flag["type"] == "SWITCH"

    duplicate = client.post("/admin/flags", headers=admin_headers, json={"name": "new_checkout", "type": "STRING"})
    assert duplicate.status_code == 409
    assert duplicate.json()["error_code"] == "duplicate_name"

    invalid = client.post("/admin/flags", headers=admin_headers, json={"name": "has space", "type": "STRING"})
    assert invalid.status_code == 422

    patched = client.patch(f"/admin/flags/{flag['id']}", headers=admin_headers, json={"description": "Checkout v2"})
    assert patched.status_code == 200
    assert patched.json()["description"] == "Checkout v2"

    listing = client.get("/admin/flags", headers=admin_headers).json()["items"]
    assert [item["name"] for item in listing] == ["new_checkout"]

    assert client.delete(f"/admin/flags/{flag['id']}", headers=admin_headers).status_code == 204
    assert client.get(f"/admin/flags/{flag['id']}", headers=admin_headers).status_code == 404

    assert [event.event_type for event in published_events] == ["created", "updated", "deleted"]
    assert published_events[1].previous.description is None
    assert published_events[1].flag.description == "Checkout v2"
    assert published_events[2].flag.name == "new_checkout"


def test_environment_value_upsert(client: TestClient, admin_headers: dict, published_events: list):
    production = _create_environment(client, admin_headers, "production")
    flag = _create_flag(client, admin_headers, "rate_limit", "INTEGER")
    url = f"/admin/flags/{flag['id']}/values/{production['id']}"

    first = client.put(url, headers=admin_headers, json={"value": "10"})
    assert first.status_code == 200
    assert first.json()["value"] == "10"

    second = client.put(
        url,
        headers=admin_headers,
        json={"value": "20", "start_datetime": "2026-01-01T00:00:00Z", "end_datetime": "2026-12-31T00:00:00Z"},
    )
    assert second.status_code == 200
    assert second.json()["id"] == first.json()["id"]
    assert second.json()["start_datetime"] == "2026-01-01T00:00:00+00:00"

    assert client.put(url, headers=admin_headers, json={"value": "ten"}).status_code == 422
    reversed_window = client.put(
        url,
        headers=admin_headers,
        json={"value": "1", "start_datetime": "2026-02-01T00:00:00Z", "end_datetime": "2026-01-01T00:00:00Z"},
    )
    assert reversed_window.status_code == 422

    values = client.get(f"/admin/flags/{flag['id']}/values", headers=admin_headers).json()["items"]
    assert [(item["environment"], item["value"]) for item in values] == [("production", "20")]

    env_events = [event for event in published_events if event.event_type == "environment_value_updated"]
    assert len(env_events) == 2
    assert env_events[1].previous_environment.value == "10"
    assert env_events[1].changed_environment.value == "20"


def test_deleting_environment_removes_values_and_grants(client: TestClient, admin_headers: dict, repository):
    staging = _create_environment(client, admin_headers, "staging")
    flag = _create_flag(client, admin_headers, "banner", "STRING")
    client.put(f"/admin/flags/{flag['id']}/values/{staging['id']}", headers=admin_headers, json={"value": "hi"})
    key = client.post(
        "/admin/api-keys",
        headers=admin_headers,
        json={"description": "staging", "environment_ids": [staging["id"]]},
    ).json()

    assert client.delete(f"/admin/environments/{staging['id']}", headers=admin_headers).status_code == 204

    assert repository.find("EnvironmentValue") == []
    assert repository.find("ApiKeyEnvironment") == []
    listed = client.get("/admin/api-keys", headers=admin_headers).json()["items"]
    assert listed[0]["id"] == key["id"]
    assert listed[0]["environment_ids"] == []


def test_environments_are_ordered(client: TestClient, admin_headers: dict):
    _create_environment(client, admin_headers, "production", sort_order=3)
    _create_environment(client, admin_headers, "development", sort_order=1)
    _create_environment(client, admin_headers, "staging", sort_order=2)

    items = client.get("/admin/environments", headers=admin_headers).json()["items"]
    assert [item["name"] for item in items] == ["development", "staging", "production"]
    assert client.post("/admin/environments", headers=admin_headers, json={"name": "staging"}).status_code == 409


def test_api_key_lifecycle(client: TestClient, admin_headers: dict):
    production = _create_environment(client, admin_headers, "production")
    staging = _create_environment(client, admin_headers, "staging")

    created = client.post("/admin/api-keys", headers=admin_headers, json={"description": "mobile app"})
    assert created.status_code == 201
    token = created.json()["token"]
    assert len(token) == 64
    assert created.json()["environment_ids"] == []

    listed = client.get("/admin/api-keys", headers=admin_headers).json()["items"]
    assert "token" not in listed[0]

    key_id = created.json()["id"]
    granted = client.put(
        f"/admin/api-keys/{key_id}/environments",
        headers=admin_headers,
        json={"environment_ids": [production["id"]]},
    )
    assert granted.status_code == 200
    assert granted.json()["environment_ids"] == [production["id"]]

    bearer = {"Authorization": f"Bearer {token}"}
    assert client.get("/all-flags/production", headers=bearer).status_code == 200
    assert client.get("/all-flags/staging", headers=bearer).status_code == 401

    assert client.post("/admin/api-keys", headers=admin_headers, json={"description": "mobile app"}).status_code == 409
    assert client.delete(f"/admin/api-keys/{key_id}", headers=admin_headers).status_code == 204
    assert client.get("/all-flags/production", headers=bearer).status_code == 401
    assert staging["name"] == "staging"


def test_webhook_crud_and_validation(client: TestClient, admin_headers: dict):
    payload = {
        "name": "deploys",
        "url": "https://hooks.example.com/flags",
        "event_types": ["created", "updated"],
        "headers": {"X-Secret": "s3cret"},
    }
    created = client.post("/admin/webhooks", headers=admin_headers, json=payload)
    assert created.status_code == 201
    assert created.json()["is_active"] is True
    assert created.json()["headers"] == {"X-Secret": "s3cret"}

    assert client.post("/admin/webhooks", headers=admin_headers, json=payload).status_code == 409

    insecure = client.post(
        "/admin/webhooks",
        headers=admin_headers,
        json={**payload, "name": "insecure", "url": "http://hooks.example.com/flags"},
    )
    assert insecure.status_code == 422
    assert insecure.json()["message"] == "URL must use HTTPS (except localhost)"

    no_events = client.post(
        "/admin/webhooks",
        headers=admin_headers,
        json={**payload, "name": "quiet", "event_types": []},
    )
    assert no_events.status_code == 422

    webhook_id = created.json()["id"]
    patched = client.patch(f"/admin/webhooks/{webhook_id}", headers=admin_headers, json={"is_active": False})
    assert patched.status_code == 200
    assert patched.json()["is_active"] is False

    assert client.delete(f"/admin/webhooks/{webhook_id}", headers=admin_headers).status_code == 204
    assert client.get(f"/admin/webhooks/{webhook_id}", headers=admin_headers).status_code == 404


def test_webhook_test_endpoint(client: TestClient, admin_headers: dict):
    received = []

    def handler(request: httpx.Request) -> httpx.Response:
        received.append(request)
        if request.url.host == "down.example.com":
            return httpx.Response(500, text="unavailable")
        return httpx.Response(200, text="thanks")

    app.dependency_overrides[get_webhook_client] = lambda: WebhookClient(transport=httpx.MockTransport(handler))
    flag = _create_flag(client, admin_headers, "new_checkout")

    def _webhook(name: str, **extra) -> str:
        response = client.post(
            "/admin/webhooks",
            headers=admin_headers,
            json={"name": name, "url": f"https://{name}.example.com/hook", "event_types": ["updated"], **extra},
        )
        assert response.status_code == 201
        return response.json()["id"]

    ok_id = _webhook("ok")
    down_id = _webhook("down")
    inactive_id = _webhook("inactive", is_active=False)

    ok = client.post(f"/admin/webhooks/{ok_id}/test", headers=admin_headers, json={"flag_id": flag["id"]})
    assert ok.status_code == 200
    assert ok.json() == {"success": True, "status_code": 200, "response_body": "thanks"}

    down = client.post(f"/admin/webhooks/{down_id}/test", headers=admin_headers, json={"flag_id": flag["id"]})
    assert down.status_code == 502
    assert down.json()["message"] == "HTTP 500: unavailable"

    inactive = client.post(f"/admin/webhooks/{inactive_id}/test", headers=admin_headers, json={"flag_id": flag["id"]})
    assert inactive.status_code == 400

    missing_flag = client.post(
        f"/admin/webhooks/{ok_id}/test",
        headers=admin_headers,
        json={"flag_id": "00000000-0000-0000-0000-000000000000"},
    )
    assert missing_flag.status_code == 404
    assert len(received) == 2


def _read_flag(client: TestClient, admin_headers: dict, environment: str, name: str):
    token = client.post("/admin/api-keys", headers=admin_headers, json={"description": f"reader {name}"}).json()["token"]
    response = client.get(f"/flag/{environment}/{name}", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 200
    return response.json()


@pytest.mark.parametrize(
    ("flag_type", "value", "expected"),
    [
        ("INTEGER", "42", 42),
        ("INTEGER", "-7", -7),
        ("INTEGER", "+3", 3),
        ("FLOAT", "1.5", 1.5),
        ("FLOAT", "-2e3", -2000.0),
        ("FLOAT", ".25", 0.25),
        ("FLOAT", "3", 3.0),
    ],
)
def test_accepted_numeric_values_read_back_as_written(
    client: TestClient, admin_headers: dict, flag_type: str, value: str, expected
):
    production = _create_environment(client, admin_headers, "production")
    flag = _create_flag(client, admin_headers, "limit", flag_type)
    url = f"/admin/flags/{flag['id']}/values/{production['id']}"
    assert client.put(url, headers=admin_headers, json={"value": value}).status_code == 200

    assert _read_flag(client, admin_headers, "production", "limit") == expected


@pytest.mark.parametrize(
    ("flag_type", "value"),
    [
        ("INTEGER", "1_000"),
        ("INTEGER", "1.5"),
        ("INTEGER", "1e3"),
        ("INTEGER", "12 "),
        ("INTEGER", ""),
        ("FLOAT", "1_000.5"),
        ("FLOAT", "inf"),
        ("FLOAT", "nan"),
        ("FLOAT", "Infinity"),
        ("FLOAT", "1e400"),
        ("FLOAT", "0x10"),
        ("FLOAT", ""),
    ],
)
def test_numeric_values_the_reader_would_misread_are_rejected(
    client: TestClient, admin_headers: dict, flag_type: str, value: str
):
    production = _create_environment(client, admin_headers, "production")
    flag = _create_flag(client, admin_headers, "limit", flag_type)
    response = client.put(
        f"/admin/flags/{flag['id']}/values/{production['id']}", headers=admin_headers, json={"value": value}
    )
    assert response.status_code == 422
    assert response.json()["error_code"] == "validation_error"


def test_flag_name_and_type_are_fixed_after_creation(client: TestClient, admin_headers: dict, published_events: list):
    production = _create_environment(client, admin_headers, "production")
    flag = _create_flag(client, admin_headers, "banner", "STRING")
    client.put(f"/admin/flags/{flag['id']}/values/{production['id']}", headers=admin_headers, json={"value": "hello"})
    url = f"/admin/flags/{flag['id']}"

    retyped = client.patch(url, headers=admin_headers, json={"type": "INTEGER"})
    assert retyped.status_code == 422
    assert retyped.json()["message"] == "Flag type cannot be changed"
    renamed = client.patch(url, headers=admin_headers, json={"name": "other_banner"})
    assert renamed.status_code == 422
    assert renamed.json()["message"] == "Flag name cannot be changed"

    unchanged = client.patch(url, headers=admin_headers, json={"name": "banner", "type": "STRING", "description": "Top"})
    assert unchanged.status_code == 200
    assert (unchanged.json()["type"], unchanged.json()["description"]) == ("STRING", "Top")

    assert _read_flag(client, admin_headers, "production", "banner") == "hello"
    assert [event.event_type for event in published_events].count("updated") == 1


def test_webhook_headers_must_be_sendable(client: TestClient, admin_headers: dict):
    response = client.post(
        "/admin/webhooks",
        headers=admin_headers,
        json={
            "name": "team",
            "url": "https://hooks.example.com/flags",
            "event_types": ["created"],
            "headers": {"X-Team": "équipe"},
        },
    )
    assert response.status_code == 422
    assert "ASCII" in response.json()["message"]


def test_concurrent_duplicate_webhook_name_is_a_conflict(client: TestClient, admin_headers: dict, monkeypatch):
    from app.application.services import webhook_service

    payload = {"name": "deploys", "url": "https://hooks.example.com/flags", "event_types": ["created"]}
    assert client.post("/admin/webhooks", headers=admin_headers, json=payload).status_code == 201

    # Another request inserted the same name between the lookup and the commit.
    monkeypatch.setattr(webhook_service, "_ensure_unique_name", lambda *args, **kwargs: None)
    response = client.post("/admin/webhooks", headers=admin_headers, json=payload)
    assert response.status_code == 409
    assert response.json()["error_code"] == "conflict"
    assert len(client.get("/admin/webhooks", headers=admin_headers).json()["items"]) == 1
