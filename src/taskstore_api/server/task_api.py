"""Task API endpoints.

This module provides a FastAPI router with CRUD over the in-memory
:class:`~taskstore_api.task_engine.store.TaskStore`.  It is mounted under
``/tasks`` by the main ``create_app`` factory.

Bodies are read as raw JSON and validated by the store, so a wrongly typed
field yields the service's own ``{"error": ...}`` response instead of a
framework validation error.
"""

from __future__ import annotations

import json
from typing import Any, Callable, Union

from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse

from ..task_engine.model import Task
from ..task_engine.results import Failure, NotFound, ValidationError
from ..task_engine.store import TaskStore
from .models import TaskOut

MALFORMED_BODY = "Request body must be valid JSON"

_STATUS_BY_FAILURE: dict[type, int] = {
    ValidationError: 400,
    NotFound: 404,
}


class MalformedBody(Exception):
    """The request body is not valid JSON."""


async def read_json_body(request: Request) -> Any:
    """Decode the request body; an empty body decodes to ``{}``."""
    raw = await request.body()
    if not raw.strip():
        return {}
    try:
        return json.loads(raw)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise MalformedBody(str(e)) from e


def failure_response(failure: Failure) -> JSONResponse:
    return JSONResponse(
        status_code=_STATUS_BY_FAILURE[type(failure)],
        content={"error": failure.message},
    )


def _to_response(result: Union[Task, Failure], status_code: int = 200) -> JSONResponse:
    if isinstance(result, (ValidationError, NotFound)):
        return failure_response(result)
    return JSONResponse(status_code=status_code, content=result.to_dict())


# ---------------------------------------------------------------------------
# Router factory
# ---------------------------------------------------------------------------

def create_task_router(get_store: Callable[[], TaskStore]) -> APIRouter:
    """Create the task API router.

    Parameters
    ----------
    get_store:
        A zero-argument callable returning the store the handlers operate on.
    """
    router = APIRouter(prefix="/tasks", tags=["tasks"])

    @router.get("", response_model=list[TaskOut])
    async def list_tasks() -> list[dict[str, Any]]:
        return [t.to_dict() for t in get_store().list()]

    @router.post("", response_model=TaskOut, status_code=201)
    async def create_task(request: Request):
        result = get_store().create(await read_json_body(request))
        return _to_response(result, status_code=201)

    @router.get("/{task_id}", response_model=TaskOut)
    async def get_task(task_id: str):
        return _to_response(get_store().get(task_id))

    @router.put("/{task_id}", response_model=TaskOut)
    async def update_task(task_id: str, request: Request):
        result = get_store().update(task_id, await read_json_body(request))
        return _to_response(result)

    @router.delete("/{task_id}", status_code=204)
    async def delete_task(task_id: str) -> Response:
        result = get_store().delete(task_id)
        if isinstance(result, NotFound):
            return failure_response(result)
        return Response(status_code=204)

    return router
