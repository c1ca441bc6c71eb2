"""Pydantic schemas for the health endpoint."""

from __future__ import annotations

from pydantic import BaseModel


class ServiceResponse(BaseModel):
    name: str
    url: str


class HealthResponse(BaseModel):
    msg: str = "success"
    services: list[ServiceResponse]
