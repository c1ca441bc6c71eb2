"""Shared fixtures for aggregator tests."""

from __future__ import annotations

import os
from datetime import datetime, timezone

import pytest

from server.config import DiskConfig, ServerConfig, ServiceConfig, StorageConfig

# Fixed scrape clock used throughout the end-to-end scenarios.
SCRAPE_TIME = datetime(2021, 12, 3, 20, 49, 51, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def server_config_env(monkeypatch):
    """Keep ambient environment variables out of ServerConfig."""
    for name in list(os.environ):
        if name.upper().split("_", 1)[0] in ("HOST", "SERVICES", "STORAGE", "MERGING"):
            monkeypatch.delenv(name)


@pytest.fixture
def clock():
    return lambda: SCRAPE_TIME


@pytest.fixture
def make_config(tmp_path):
    """Build a ServerConfig for services given as name -> url."""

    def _make(services: dict[str, str] | None = None, **kwargs) -> ServerConfig:
        return ServerConfig(
            services=[ServiceConfig(name=name, url=url) for name, url in (services or {}).items()],
            storage=kwargs.pop("storage", StorageConfig(disk=DiskConfig(path=str(tmp_path / "store")))),
            **kwargs,
        )

    return _make
