"""Provide the public `taskstore_api` package exports."""

from __future__ import annotations

__version__ = "1.0.0"

from .server import create_app  # noqa: E402

__all__ = ["__version__", "create_app"]
