"""Pydantic models for API responses."""

from __future__ import annotations

from pydantic import BaseModel


class TaskOut(BaseModel):
    """Task as returned by the API."""

    id: str
    title: str
    description: str = ""


class ErrorOut(BaseModel):
    """Body of every failure response."""

    error: str


class PingOut(BaseModel):
    msg: str


class HealthOut(BaseModel):
    status: str
