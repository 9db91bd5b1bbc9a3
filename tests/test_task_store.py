"""Tests for the in-memory task store (task_engine/store.py)."""

from __future__ import annotations

import threading
from typing import Iterator

import pytest
from loguru import logger

from taskstore_api.task_engine.model import Task
from taskstore_api.task_engine.results import NotFound, ValidationError
from taskstore_api.task_engine.store import TaskStore


@pytest.fixture
def store() -> TaskStore:
    return TaskStore()


@pytest.fixture
def log_messages() -> Iterator[list[str]]:
    messages: list[str] = []
    sink_id = logger.add(lambda m: messages.append(m.record["message"]), level="DEBUG")
    yield messages
    logger.remove(sink_id)


# ---------------------------------------------------------------------------
# create
# ---------------------------------------------------------------------------

class TestCreate:
    def test_assigns_sequential_string_ids(self, store: TaskStore) -> None:
        ids = [store.create({"title": f"Task {n}"}).id for n in range(3)]
        assert ids == ["1", "2", "3"]

    def test_returns_stored_record(self, store: TaskStore) -> None:
        task = store.create({"title": "Task 1", "description": "desc"})
        assert task == Task(id="1", title="Task 1", description="desc")
        assert store.get("1") == task

    def test_description_defaults_to_empty(self, store: TaskStore) -> None:
        assert store.create({"title": "Only title"}).description == ""
        assert store.create({"title": "Null desc", "description": None}).description == ""

    @pytest.mark.parametrize("payload", [{}, {"title": ""}, {"title": 123}, {"title": None}, {"title": ["x"]}])
    def test_title_required(self, store: TaskStore, payload: dict) -> None:
        result = store.create(payload)
        assert result == ValidationError(field="title", message='Field "title" is required')
        assert store.list() == []

    def test_non_string_description_rejected(self, store: TaskStore) -> None:
        result = store.create({"title": "X", "description": 42})
        assert isinstance(result, ValidationError)
        assert result.message == 'Field "description" must be a string'
        assert len(store) == 0

    def test_failed_create_does_not_consume_id(self, store: TaskStore) -> None:
        store.create({})
        assert store.create({"title": "First"}).id == "1"

    @pytest.mark.parametrize("payload", [None, [], "title", 7])
    def test_non_object_payload_is_empty(self, store: TaskStore, payload: object) -> None:
        assert isinstance(store.create(payload), ValidationError)

    def test_logs_created_id(self, store: TaskStore, log_messages: list[str]) -> None:
        store.create({"title": "Logged"})
        assert "Task created 1" in log_messages


# ---------------------------------------------------------------------------
# get / list
# ---------------------------------------------------------------------------

class TestRead:
    def test_get_missing(self, store: TaskStore) -> None:
        assert store.get("nope") == NotFound("nope")
        assert store.get("nope").message == "Task not found"

    def test_list_empty(self, store: TaskStore) -> None:
        assert store.list() == []

    def test_list_insertion_order(self, store: TaskStore) -> None:
        for title in ("a", "b", "c"):
            store.create({"title": title})
        assert [t.title for t in store.list()] == ["a", "b", "c"]

    def test_repeated_reads_identical(self, store: TaskStore) -> None:
        store.create({"title": "a", "description": "x"})
        store.create({"title": "b"})
        assert store.list() == store.list()
        assert store.get("2") == store.get("2")


# ---------------------------------------------------------------------------
# update
# ---------------------------------------------------------------------------

class TestUpdate:
    def test_partial_merge(self, store: TaskStore) -> None:
        store.create({"title": "Task 1", "description": "desc"})
        updated = store.update("1", {"title": "Task 1 updated"})
        assert updated == Task(id="1", title="Task 1 updated", description="desc")
        assert store.get("1") == updated

    def test_empty_patch_leaves_fields(self, store: TaskStore) -> None:
        original = store.create({"title": "Same", "description": "d"})
        assert store.update("1", {}) == original

    def test_id_in_patch_is_ignored(self, store: TaskStore) -> None:
        store.create({"title": "T"})
        assert store.update("1", {"id": "99", "title": "U"}).id == "1"
        assert isinstance(store.get("99"), NotFound)

    def test_empty_title_allowed_on_update(self, store: TaskStore) -> None:
        store.create({"title": "T"})
        assert store.update("1", {"title": ""}).title == ""

    def test_missing_checked_before_validation(self, store: TaskStore) -> None:
        assert store.update("42", {"title": 123}) == NotFound("42")

    def test_title_type(self, store: TaskStore) -> None:
        store.create({"title": "T"})
        result = store.update("1", {"title": 123})
        assert result == ValidationError(field="title", message='Field "title" must be a string')
        assert store.get("1").title == "T"

    def test_null_counts_as_present(self, store: TaskStore) -> None:
        store.create({"title": "T", "description": "d"})
        result = store.update("1", {"description": None})
        assert isinstance(result, ValidationError)
        assert result.field == "description"

    def test_title_checked_before_description(self, store: TaskStore) -> None:
        store.create({"title": "T"})
        assert store.update("1", {"title": 1, "description": 2}).field == "title"

    def test_invalid_patch_changes_nothing(self, store: TaskStore) -> None:
        store.create({"title": "T", "description": "d"})
        store.update("1", {"title": "new", "description": 5})
        assert store.get("1") == Task(id="1", title="T", description="d")


# ---------------------------------------------------------------------------
# delete / reset
# ---------------------------------------------------------------------------

class TestDeleteAndReset:
    def test_delete_then_get(self, store: TaskStore) -> None:
        store.create({"title": "To delete"})
        assert store.delete("1").title == "To delete"
        assert isinstance(store.get("1"), NotFound)

    def test_delete_missing(self, store: TaskStore) -> None:
        assert store.delete("1") == NotFound("1")

    def test_ids_not_reused_after_delete(self, store: TaskStore) -> None:
        store.create({"title": "a"})
        store.create({"title": "b"})
        store.delete("2")
        assert store.create({"title": "c"}).id == "3"

    def test_reset_restarts_counter(self, store: TaskStore) -> None:
        store.create({"title": "a"})
        store.create({"title": "b"})
        store.reset()
        assert store.list() == []
        assert store.create({"title": "again"}).id == "1"

    def test_fresh_stores_are_isolated(self) -> None:
        first, second = TaskStore(), TaskStore()
        first.create({"title": "only in first"})
        assert second.list() == []
        assert second.create({"title": "x"}).id == "1"


def test_concurrent_creates_get_unique_ids(store: TaskStore) -> None:
    def worker() -> None:
        for _ in range(50):
            store.create({"title": "t"})

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    ids = [t.id for t in store.list()]
    assert len(ids) == 200
    assert len(set(ids)) == 200
