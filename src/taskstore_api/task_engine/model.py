"""Task record and the typed inputs accepted by the store.

Raw request payloads never reach these types directly; they are produced by
:mod:`.validation` once every field has passed its type check.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional


# ---------------------------------------------------------------------------
# Task dataclass
# ---------------------------------------------------------------------------

@dataclass
class Task:
    """A task held by the in-memory store.

    ``id`` is assigned by the store and never changes; ``title`` and
    ``description`` are always strings.
    """

    id: str
    title: str
    description: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "title": self.title, "description": self.description}


# ---------------------------------------------------------------------------
# Validated inputs
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TaskDraft:
    """Validated fields for a task that does not have an id yet."""

    title: str
    description: str = ""


@dataclass(frozen=True)
class TaskPatch:
    """Validated partial update; ``None`` means the field was not sent."""

    title: Optional[str] = None
    description: Optional[str] = None

    @property
    def changed_fields(self) -> list[str]:
        return [name for name in ("title", "description") if getattr(self, name) is not None]

    def apply(self, task: Task) -> Task:
        """Return a copy of *task* with the patched fields replaced."""
        return Task(
            id=task.id,
            title=self.title if self.title is not None else task.title,
            description=self.description if self.description is not None else task.description,
        )
