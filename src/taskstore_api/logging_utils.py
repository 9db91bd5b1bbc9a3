"""Configure loguru sinks and pick levels for request log lines."""

from __future__ import annotations

import sys

from loguru import logger

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{module}</cyan>:<cyan>{line}</cyan> | "
    "<magenta>{extra[request_id]}</magenta> | "
    "{message}"
)


def configure_logging(level: str = "INFO") -> None:
    """Replace the default loguru sink with a single stderr sink.

    Records logged outside a request get ``request_id`` ``-`` so the format
    never fails on a missing key.
    """
    logger.remove()
    logger.configure(extra={"request_id": "-"})
    logger.add(sys.stderr, level=level.upper(), format=LOG_FORMAT)


def level_for_status(status_code: int) -> str:
    """Map an HTTP status to the loguru level used for its request line."""
    if status_code >= 500:
        return "ERROR"
    if status_code >= 400:
        return "WARNING"
    return "INFO"
