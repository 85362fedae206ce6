"""
API tests for memory CRUD and search, including the events they emit.
"""

import asyncio

import pytest
from fastapi.testclient import TestClient

from valora.api.main import create_app


@pytest.fixture
def client(container):
    with TestClient(create_app(container=container)) as c:
        yield c


def _create(client, headers, content="Design the webhook retry policy", tags=None):
    response = client.post(
        "/memory",
        json={"content": content, "source": "manual", "tags": tags or ["design"]},
        headers=headers,
    )
    assert response.status_code == 201
    return response.json()


def test_create_and_get(client, api_headers):
    created = _create(client, api_headers)

    response = client.get(f"/memory/{created['id']}", headers=api_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["content"] == "Design the webhook retry policy"
    assert body["version"] == 1
    assert body["tags"] == ["design"]


def test_list(client, api_headers):
    _create(client, api_headers, "one")
    _create(client, api_headers, "two")

    response = client.get("/memory", headers=api_headers)

    assert [m["content"] for m in response.json()] == ["one", "two"]


def test_search(client, api_headers):
    _create(client, api_headers, "Webhook signing notes")
    _create(client, api_headers, "Lunch", tags=["WEBHOOKS"])
    _create(client, api_headers, "Unrelated", tags=["misc"])

    response = client.get("/memory/search", params={"q": "webhook"}, headers=api_headers)

    assert sorted(m["content"] for m in response.json()) == ["Lunch", "Webhook signing notes"]


def test_search_requires_query(client, api_headers):
    response = client.get("/memory/search", headers=api_headers)
    assert response.status_code == 400


def test_update(client, api_headers):
    created = _create(client, api_headers)

    response = client.put(
        f"/memory/{created['id']}",
        json={"content": "Revised", "tags": ["design", "v2"]},
        headers=api_headers,
    )

    body = response.json()
    assert response.status_code == 200
    assert body["id"] == created["id"]
    assert body["content"] == "Revised"
    assert body["tags"] == ["design", "v2"]
    assert body["version"] == 2
    assert body["source"] == "manual"


def test_delete(client, api_headers):
    created = _create(client, api_headers)

    response = client.delete(f"/memory/{created['id']}", headers=api_headers)

    assert response.status_code == 204
    assert client.get(f"/memory/{created['id']}", headers=api_headers).status_code == 404
    assert client.delete(f"/memory/{created['id']}", headers=api_headers).status_code == 404


def test_missing_memory(client, api_headers):
    response = client.get("/memory/does-not-exist", headers=api_headers)

    assert response.status_code == 404
    body = response.json()
    assert body["code"] == "MEMORY_NOT_FOUND_ERROR"
    assert "does-not-exist" in body["error"]


def test_update_missing_memory(client, api_headers):
    response = client.put("/memory/ghost", json={"content": "x"}, headers=api_headers)
    assert response.status_code == 404


def test_create_requires_content(client, api_headers):
    response = client.post("/memory", json={"source": "manual"}, headers=api_headers)

    assert response.status_code == 400
    assert response.json()["details"][0]["field"] == "content"


def test_memory_events(container, api_headers, recording_plugin, http_session):
    asyncio.run(container.plugin_manager.register_plugin(recording_plugin))
    container.webhook_manager.register_webhook("https://hooks.example.com/created", ["memory.created"])

    with TestClient(create_app(container=container)) as client:
        created = _create(client, api_headers)
        client.put(f"/memory/{created['id']}", json={"content": "v2"}, headers=api_headers)
        client.get("/memory/search", params={"q": "v2"}, headers=api_headers)
        client.delete(f"/memory/{created['id']}", headers=api_headers)

    assert sorted(recording_plugin.events) == [
        "memory.created",
        "memory.deleted",
        "memory.updated",
        "search.performed",
    ]
    payloads = dict(recording_plugin.calls)
    assert payloads["memory.deleted"]["id"] == created["id"]
    assert payloads["search.performed"]["query"] == "v2"
    # Only memory.created matches the registered webhook
    assert len(http_session.calls) == 1
