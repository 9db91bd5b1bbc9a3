"""FastAPI web server for the task store service."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..config import ServiceSettings
from ..task_engine.store import TaskStore
from .middleware import REQUEST_ID_HEADER, apply_security_headers, install_middleware
from .models import ErrorOut, HealthOut, PingOut
from .task_api import MALFORMED_BODY, MalformedBody, create_task_router, read_json_body

PING_MESSAGE = "Ping"
PING_ERROR = 'Request Body should be "Ping"'
INTERNAL_ERROR = "Internal Server Error"


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings: ServiceSettings = app.state.settings
    logger.info("Server is running on port {} ({})", settings.port, settings.environment)
    yield
    logger.info("Received termination signal. Shutting down gracefully...")


def _register_error_handlers(app: FastAPI) -> None:
    """Render every failure as ``{"error": <message>}``."""

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": str(exc.detail)},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = exc.errors()
        message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
        return JSONResponse(status_code=400, content={"error": str(message)})

    @app.exception_handler(MalformedBody)
    async def malformed_body(request: Request, exc: MalformedBody) -> JSONResponse:
        logger.warning("Malformed JSON body on {} {}: {}", request.method, request.url.path, exc)
        return JSONResponse(status_code=400, content={"error": MALFORMED_BODY})

    @app.exception_handler(Exception)
    async def unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        logger.opt(exception=exc).error(
            "Unhandled error on {} {}", request.method, request.url.path
        )
        # Rendered by ServerErrorMiddleware, outside the middleware stack.
        response = JSONResponse(status_code=500, content={"error": INTERNAL_ERROR})
        request_id = getattr(request.state, "request_id", None) or request.headers.get(REQUEST_ID_HEADER)
        if request_id:
            response.headers[REQUEST_ID_HEADER] = request_id
        return apply_security_headers(response)


def create_app(
    settings: Optional[ServiceSettings] = None,
    store: Optional[TaskStore] = None,
) -> FastAPI:
    """Create and configure FastAPI application.

    Args:
        settings: Service settings; defaults to :class:`ServiceSettings` defaults.
        store: Task store the handlers operate on. A fresh, empty store is
            created when omitted, so every app (and every test) is isolated.

    Returns:
        Configured FastAPI app.
    """
    settings = settings or ServiceSettings()
    app = FastAPI(
        title="Task Store API",
        description="Health check, ping/pong and CRUD over in-memory tasks",
        version=settings.version,
        lifespan=_lifespan,
    )

    app.state.settings = settings
    app.state.task_store = store if store is not None else TaskStore()

    def _get_store() -> TaskStore:
        return app.state.task_store

    _register_error_handlers(app)
    install_middleware(app, settings)

    @app.post("/", response_model=PingOut, responses={400: {"model": ErrorOut}})
    async def ping(request: Request) -> Any:
        """Answer ``{"msg": "Ping"}`` with ``{"msg": "Pong"}``."""
        body = await read_json_body(request)
        msg = body.get("msg") if isinstance(body, dict) else None
        if msg != PING_MESSAGE:
            logger.warning("Ping rejected: msg={!r}", msg)
            return JSONResponse(status_code=400, content={"error": PING_ERROR})
        return {"msg": "Pong"}

    @app.get("/health", response_model=HealthOut)
    async def health() -> dict[str, str]:
        """Liveness check; does not touch the store."""
        return {"status": "ok"}

    app.include_router(create_task_router(_get_store))

    logger.debug(
        "Created app: environment={} version={} rate_limit={}/{}s",
        settings.environment,
        settings.version,
        settings.rate_limit_max,
        settings.rate_limit_window_seconds,
    )
    return app
