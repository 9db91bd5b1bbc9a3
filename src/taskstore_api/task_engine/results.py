"""Failure kinds returned by store operations.

Store methods return one of these instead of raising, and the HTTP layer maps
each kind to a status code in one place.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

TASK_NOT_FOUND = "Task not found"


@dataclass(frozen=True)
class ValidationError:
    """A client-supplied field failed a presence or type check."""

    field: str
    message: str

    @classmethod
    def required(cls, field: str) -> ValidationError:
        return cls(field=field, message=f'Field "{field}" is required')

    @classmethod
    def not_a_string(cls, field: str) -> ValidationError:
        return cls(field=field, message=f'Field "{field}" must be a string')


@dataclass(frozen=True)
class NotFound:
    """The referenced task id does not exist."""

    task_id: str
    message: str = TASK_NOT_FOUND


Failure = Union[ValidationError, NotFound]