"""Tests for the task API endpoints."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from taskstore_api.config import ServiceSettings
from taskstore_api.server.api import create_app
from taskstore_api.task_engine.store import TaskStore


@pytest.fixture
def store() -> TaskStore:
    return TaskStore()


@pytest.fixture
def client(store: TaskStore) -> TestClient:
    """A client over a fresh app and store, with rate limiting off."""
    app = create_app(settings=ServiceSettings(rate_limit_max=0), store=store)
    return TestClient(app)


class TestTaskCRUD:
    def test_list_empty(self, client: TestClient) -> None:
        resp = client.get("/tasks")
        assert resp.status_code == 200
        assert resp.json() == []

    def test_create(self, client: TestClient) -> None:
        resp = client.post("/tasks", json={"title": "Task 1", "description": "desc"})
        assert resp.status_code == 201
        assert resp.json() == {"id": "1", "title": "Task 1", "description": "desc"}

    def test_create_get_list_update_delete(self, client: TestClient) -> None:
        created = client.post("/tasks", json={"title": "Task 1", "description": "desc"}).json()
        task_id = created["id"]

        resp = client.get(f"/tasks/{task_id}")
        assert resp.status_code == 200
        assert resp.json() == created

        resp = client.get("/tasks")
        assert resp.status_code == 200
        assert resp.json() == [created]

        resp = client.put(f"/tasks/{task_id}", json={"title": "Task 1 updated"})
        assert resp.status_code == 200
        assert resp.json() == {"id": task_id, "title": "Task 1 updated", "description": "desc"}

        resp = client.delete(f"/tasks/{task_id}")
        assert resp.status_code == 204
        assert resp.content == b""

        resp = client.get(f"/tasks/{task_id}")
        assert resp.status_code == 404
        assert resp.json() == {"error": "Task not found"}

    def test_create_only_title(self, client: TestClient) -> None:
        resp = client.post("/tasks", json={"title": "X"})
        assert resp.status_code == 201
        assert resp.json()["description"] == ""

    def test_update_empty_patch(self, client: TestClient) -> None:
        created = client.post("/tasks", json={"title": "X", "description": "d"}).json()
        resp = client.put("/tasks/1", json={})
        assert resp.status_code == 200
        assert resp.json() == created

    def test_create_without_body(self, client: TestClient) -> None:
        resp = client.post("/tasks")
        assert resp.status_code == 400
        assert resp.json() == {"error": 'Field "title" is required'}

    def test_store_is_shared_with_app(self, client: TestClient, store: TaskStore) -> None:
        client.post("/tasks", json={"title": "via http"})
        assert [t.title for t in store.list()] == ["via http"]


class TestValidationErrors:
    def test_create_empty_object(self, client: TestClient) -> None:
        resp = client.post("/tasks", json={})
        assert resp.status_code == 400
        assert resp.json() == {"error": 'Field "title" is required'}

    @pytest.mark.parametrize("title", ["", 123, None, False])
    def test_create_bad_title(self, client: TestClient, title: object) -> None:
        resp = client.post("/tasks", json={"title": title})
        assert resp.status_code == 400
        assert client.get("/tasks").json() == []

    def test_create_bad_description(self, client: TestClient) -> None:
        resp = client.post("/tasks", json={"title": "X", "description": 123})
        assert resp.status_code == 400
        assert resp.json() == {"error": 'Field "description" must be a string'}

    def test_update_bad_title(self, client: TestClient) -> None:
        client.post("/tasks", json={"title": "X"})
        resp = client.put("/tasks/1", json={"title": 123})
        assert resp.status_code == 400
        assert resp.json() == {"error": 'Field "title" must be a string'}

    def test_update_bad_description(self, client: TestClient) -> None:
        client.post("/tasks", json={"title": "X"})
        resp = client.put("/tasks/1", json={"description": 123})
        assert resp.status_code == 400
        assert resp.json() == {"error": 'Field "description" must be a string'}

    def test_update_missing_before_validation(self, client: TestClient) -> None:
        resp = client.put("/tasks/9", json={"title": 123})
        assert resp.status_code == 404
        assert resp.json() == {"error": "Task not found"}

    def test_delete_missing(self, client: TestClient) -> None:
        resp = client.delete("/tasks/1")
        assert resp.status_code == 404
        assert resp.json() == {"error": "Task not found"}

    def test_malformed_json(self, client: TestClient) -> None:
        resp = client.post(
            "/tasks",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )
        assert resp.status_code == 400
        assert resp.json() == {"error": "Request body must be valid JSON"}


def test_ids_increase_across_deletes(client: TestClient) -> None:
    assert client.post("/tasks", json={"title": "a"}).json()["id"] == "1"
    assert client.post("/tasks", json={"title": "b"}).json()["id"] == "2"
    client.delete("/tasks/2")
    assert client.post("/tasks", json={"title": "c"}).json()["id"] == "3"
    assert [t["id"] for t in client.get("/tasks").json()] == ["1", "3"]
