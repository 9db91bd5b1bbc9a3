"""Load service settings from environment variables (+ optional ``.env``)."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from dotenv import load_dotenv
from loguru import logger

from . import __version__

DEFAULT_PORT = 8080
DEFAULT_RATE_LIMIT_WINDOW_SECONDS = 60
DEFAULT_RATE_LIMIT_MAX = 100
DEFAULT_MAX_BODY_BYTES = 10 * 1024 * 1024
DEFAULT_SHUTDOWN_TIMEOUT_SECONDS = 10


@dataclass(frozen=True)
class ServiceSettings:
    """Resolved configuration for the HTTP layer.

    The task store itself takes no configuration; everything here is consumed
    by the server, its middleware, and the entry point.
    """

    host: str = "0.0.0.0"
    port: int = DEFAULT_PORT
    environment: str = "DEV"
    version: str = __version__
    cors_origins: tuple[str, ...] = ()
    rate_limit_window_seconds: int = DEFAULT_RATE_LIMIT_WINDOW_SECONDS
    rate_limit_max: int = DEFAULT_RATE_LIMIT_MAX
    trusted_proxy_hops: int = 0
    max_body_bytes: int = DEFAULT_MAX_BODY_BYTES
    log_level: str = "INFO"
    log_requests: bool = False
    shutdown_timeout_seconds: int = DEFAULT_SHUTDOWN_TIMEOUT_SECONDS

    @property
    def rate_limit_enabled(self) -> bool:
        return self.rate_limit_max > 0 and self.rate_limit_window_seconds > 0


def _get_str(env: Mapping[str, str], name: str, default: str) -> str:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip()


def _get_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError:
        logger.warning("Invalid integer for {}={!r}; using {}", name, raw, default)
        return default


def _get_bool(env: Mapping[str, str], name: str, default: bool = False) -> bool:
    raw = env.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _split_origins(raw: str) -> tuple[str, ...]:
    return tuple(origin.strip() for origin in raw.split(",") if origin.strip())


def load_settings(environ: Optional[Mapping[str, str]] = None) -> ServiceSettings:
    """Build :class:`ServiceSettings` from the environment.

    Args:
        environ: Mapping to read instead of ``os.environ``. When omitted, a
            ``.env`` file in the working directory is loaded first without
            overriding variables that are already set.

    Returns:
        The resolved settings; malformed numbers fall back to their defaults.
    """
    if environ is None:
        load_dotenv(override=False)
        environ = os.environ

    return ServiceSettings(
        host=_get_str(environ, "HOST", "0.0.0.0"),
        port=_get_int(environ, "PORT", DEFAULT_PORT),
        environment=_get_str(environ, "ENVIRONMENT", "DEV"),
        version=_get_str(environ, "APP_VERSION", __version__),
        cors_origins=_split_origins(environ.get("CORS_ORIGIN", "")),
        rate_limit_window_seconds=_get_int(
            environ, "RATE_LIMIT_WINDOW_SECONDS", DEFAULT_RATE_LIMIT_WINDOW_SECONDS
        ),
        rate_limit_max=_get_int(environ, "RATE_LIMIT_MAX", DEFAULT_RATE_LIMIT_MAX),
        trusted_proxy_hops=max(0, _get_int(environ, "TRUST_PROXY_HOPS", 0)),
        max_body_bytes=_get_int(environ, "MAX_BODY_BYTES", DEFAULT_MAX_BODY_BYTES),
        log_level=_get_str(environ, "LOG_LEVEL", "INFO").upper(),
        log_requests=_get_bool(environ, "LOG_REQUESTS"),
        shutdown_timeout_seconds=_get_int(
            environ, "SHUTDOWN_TIMEOUT_SECONDS", DEFAULT_SHUTDOWN_TIMEOUT_SECONDS
        ),
    )
