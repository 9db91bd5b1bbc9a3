"""Validate untyped request payloads into :class:`TaskDraft` / :class:`TaskPatch`."""

from __future__ import annotations

from typing import Any, Union

from .model import TaskDraft, TaskPatch
from .results import ValidationError


def _as_payload(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def validate_create(payload: Any) -> Union[TaskDraft, ValidationError]:
    """Check a create payload.

    Args:
        payload: Decoded JSON body. Anything other than an object counts as empty.

    Returns:
        A :class:`TaskDraft`, or the first :class:`ValidationError` found.
    """
    data = _as_payload(payload)

    title = data.get("title")
    if not title or not isinstance(title, str):
        return ValidationError.required("title")

    description = data.get("description")
    if description is None:
        description = ""
    elif not isinstance(description, str):
        return ValidationError.not_a_string("description")

    return TaskDraft(title=title, description=description)


def validate_update(payload: Any) -> Union[TaskPatch, ValidationError]:
    """Check a partial-update payload.

    Only keys present in the payload are checked; ``null`` counts as present
    and fails the string check. ``title`` is checked before ``description``.
    """
    data = _as_payload(payload)

    if "title" in data and not isinstance(data["title"], str):
        return ValidationError.not_a_string("title")
    if "description" in data and not isinstance(data["description"], str):
        return ValidationError.not_a_string("description")

    return TaskPatch(title=data.get("title"), description=data.get("description"))
