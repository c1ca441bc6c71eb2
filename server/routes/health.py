"""Health and metrics endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from server.config import ServerConfig
from server.dependencies import get_server_config
from server.schemas.health import HealthResponse, ServiceResponse

router = APIRouter(tags=["health"])


@router.get("/", response_model=HealthResponse)
async def health(cfg: ServerConfig = Depends(get_server_config)):
    return HealthResponse(services=[ServiceResponse(name=svc.name, url=svc.url) for svc in cfg.services])


@router.get("/metrics")
async def metrics():
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
