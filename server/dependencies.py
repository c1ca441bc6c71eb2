"""FastAPI dependencies exposing application state to routes."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime

from fastapi import Request

from aggregator.storage import Storage
from server.config import ServerConfig


def get_storage(request: Request) -> Storage:
    return request.app.state.storage


def get_server_config(request: Request) -> ServerConfig:
    return request.app.state.config


def get_clock(request: Request) -> Callable[[], datetime] | None:
    return getattr(request.app.state, "clock", None)
