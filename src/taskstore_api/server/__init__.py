"""HTTP layer: app factory, task router, and middleware."""

from .api import create_app

__all__ = ["create_app"]
