"""In-memory task store with a monotonic id counter.

All reads and writes take the store lock, so a mutation is never partially
visible to another request, including when handlers run in a threadpool.
"""

from __future__ import annotations

import threading
from typing import Any, Union

from loguru import logger

from .model import Task
from .results import NotFound, ValidationError
from .validation import validate_create, validate_update

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

FIRST_TASK_ID = 1


# ---------------------------------------------------------------------------
# TaskStore
# ---------------------------------------------------------------------------

class TaskStore:
    """Process-wide keyed collection of :class:`Task` records.

    Construct one per application (or per test for isolation) and hand it to
    the request handlers. Operations return the task or a failure value
    (:class:`ValidationError` / :class:`NotFound`); they never raise for
    client errors.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._tasks: dict[str, Task] = {}
        self._next_id = FIRST_TASK_ID

    def __len__(self) -> int:
        with self._lock:
            return len(self._tasks)

    # -- internal helpers ---------------------------------------------------

    def _allocate_id(self) -> str:
        task_id = str(self._next_id)
        self._next_id += 1
        return task_id

    # -- public API ---------------------------------------------------------

    def create(self, payload: Any) -> Union[Task, ValidationError]:
        draft = validate_create(payload)
        if isinstance(draft, ValidationError):
            logger.warning("Task create validation failed: {}", draft.message)
            return draft

        with self._lock:
            task = Task(id=self._allocate_id(), title=draft.title, description=draft.description)
            self._tasks[task.id] = task

        logger.bind(
            title_length=len(task.title),
            has_description=bool(task.description),
        ).info("Task created {}", task.id)
        return task

    def get(self, task_id: str) -> Union[Task, NotFound]:
        with self._lock:
            task = self._tasks.get(task_id)
        if task is None:
            logger.warning("Task not found: {}", task_id)
            return NotFound(task_id)
        logger.info("Task retrieved {}", task_id)
        return task

    def list(self) -> list[Task]:
        """Return every stored task in insertion order."""
        with self._lock:
            tasks = list(self._tasks.values())
        logger.info("Tasks listed: total={}", len(tasks))
        return tasks

    def update(self, task_id: str, payload: Any) -> Union[Task, NotFound, ValidationError]:
        """Merge the fields present in *payload* into an existing task.

        Existence is checked before the payload is validated, so an unknown id
        yields :class:`NotFound` even when the payload is invalid too.
        """
        with self._lock:
            current = self._tasks.get(task_id)
            if current is None:
                logger.warning("Task update missing: {}", task_id)
                return NotFound(task_id)

            patch = validate_update(payload)
            if isinstance(patch, ValidationError):
                logger.warning(
                    "Task update validation failed: id={} field={}", task_id, patch.field
                )
                return patch

            updated = patch.apply(current)
            self._tasks[task_id] = updated

        logger.bind(changed_fields=patch.changed_fields).info("Task updated {}", task_id)
        return updated

    def delete(self, task_id: str) -> Union[Task, NotFound]:
        with self._lock:
            task = self._tasks.pop(task_id, None)
        if task is None:
            logger.warning("Task delete missing: {}", task_id)
            return NotFound(task_id)
        logger.info("Task deleted {}", task_id)
        return task

    def reset(self) -> None:
        """Drop every task and restart ids at ``"1"``. Test harness use only."""
        with self._lock:
            self._tasks.clear()
            self._next_id = FIRST_TASK_ID
