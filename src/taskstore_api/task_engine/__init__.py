"""In-memory task store and its validation rules."""

from .model import Task, TaskDraft, TaskPatch
from .results import NotFound, ValidationError
from .store import TaskStore

__all__ = [
    "NotFound",
    "Task",
    "TaskDraft",
    "TaskPatch",
    "TaskStore",
    "ValidationError",
]
