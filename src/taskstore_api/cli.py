from __future__ import annotations

import argparse
import dataclasses
from typing import Optional

from fastapi import FastAPI

from .config import ServiceSettings, load_settings
from .logging_utils import configure_logging
from .server import create_app
from .task_engine.store import TaskStore

APP_FACTORY = "taskstore_api.cli:app_factory"


def app_factory() -> FastAPI:
    """Build the app from environment settings; used by ``uvicorn --factory``."""
    settings = load_settings()
    configure_logging(settings.log_level)
    return create_app(settings=settings, store=TaskStore())


def _settings_from_args(args: argparse.Namespace) -> ServiceSettings:
    settings = load_settings()
    overrides = {}
    if args.host is not None:
        overrides['host'] = args.host
    if args.port is not None:
        overrides['port'] = args.port
    if args.log_level is not None:
        overrides['log_level'] = args.log_level.upper()
    return dataclasses.replace(settings, **overrides) if overrides else settings


def _server(args: argparse.Namespace) -> int:
    import uvicorn

    settings = _settings_from_args(args)
    configure_logging(settings.log_level)

    # uvicorn installs its own SIGINT/SIGTERM handlers and drains in-flight
    # requests for up to timeout_graceful_shutdown seconds.
    common = dict(
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        server_header=False,
        timeout_graceful_shutdown=settings.shutdown_timeout_seconds,
    )
    if args.reload:
        uvicorn.run(APP_FACTORY, factory=True, reload=True, **common)
    else:
        app = create_app(settings=settings, store=TaskStore())
        uvicorn.run(app, **common)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Task store HTTP service')
    subparsers = parser.add_subparsers(dest='command')

    server = subparsers.add_parser('server', help='Start the web server')
    server.add_argument('--host', default=None, help='Bind address (default: $HOST or 0.0.0.0)')
    server.add_argument('--port', default=None, type=int, help='Port (default: $PORT or 8080)')
    server.add_argument('--log-level', default=None, choices=['debug', 'info', 'warning', 'error'])
    server.add_argument('--reload', action='store_true')
    server.set_defaults(func=_server)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    handler = getattr(args, 'func', None)
    if handler is None:
        parser.print_help()
        return 1
    return int(handler(args) or 0)


if __name__ == '__main__':
    raise SystemExit(main())
