"""Collated OpenAPI endpoints: version listing and version retrieval."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime

from fastapi import APIRouter, Depends, Response
from fastapi.responses import JSONResponse, PlainTextResponse

from aggregator.errors import NoMatchingVersion, VersionParseError
from aggregator.storage import Storage
from aggregator.version import Version, VersionSet, parse_query, parse_version
from server.dependencies import get_clock, get_storage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/openapi", tags=["openapi"])

HEADER_VERSION_REQUESTED = "X-Snyk-Version-Requested"
HEADER_VERSION_SERVED = "X-Snyk-Version-Served"


@router.get("")
async def list_versions(store: Storage = Depends(get_storage)):
    try:
        versions = await store.versions()
    except Exception:
        logger.exception("cannot get versions")
        return PlainTextResponse("Cannot get versions", status_code=500)
    return JSONResponse(versions)


@router.get("/{version}")
async def get_version(
    version: str,
    store: Storage = Depends(get_storage),
    clock: Callable[[], datetime] | None = Depends(get_clock),
):
    headers = {HEADER_VERSION_REQUESTED: version}
    try:
        # A bare stability label is taken to mean that stability as of today.
        query = parse_query(version, clock)
    except VersionParseError as exc:
        logger.info("invalid version requested: %s", exc)
        return PlainTextResponse("Invalid version", status_code=400, headers=headers)

    try:
        available = VersionSet(parse_version(v) for v in await store.versions())
        resolved = available.resolve(query)
    except NoMatchingVersion:
        return PlainTextResponse("Version not found", status_code=404, headers=headers)
    except Exception:
        logger.exception("failure to resolve version %s", version)
        return PlainTextResponse("Failure to resolve version", status_code=500, headers=headers)

    # The served header carries the stability the client asked for.
    headers[HEADER_VERSION_SERVED] = Version(resolved.date, query.stability).canonical()
    try:
        content = await store.version(resolved.canonical())
    except Exception:
        logger.exception("failure to retrieve version %s", resolved)
        return PlainTextResponse("Failure to retrieve version", status_code=500, headers=headers)
    return Response(content=content, media_type="application/json", headers=headers)
