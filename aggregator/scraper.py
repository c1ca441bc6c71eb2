"""Scraper: pulls OpenAPI versions from every configured service into storage."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import Callable
from datetime import datetime, timezone

import httpx

from aggregator import metrics
from aggregator.digest import parse_digest_header
from aggregator.errors import ScrapeError, TransportError
from aggregator.storage.base import Storage

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 15.0


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _http_error(resp: httpx.Response) -> TransportError:
    body = resp.text.strip()
    if body:
        return TransportError(f"request failed: HTTP {resp.status_code}: {body}")
    return TransportError(f"request failed: HTTP {resp.status_code}")


def _is_json(resp: httpx.Response) -> bool:
    # Parameters such as "; charset=utf-8" may follow the media type.
    return resp.headers.get("content-type", "").startswith("application/json")


class Service:
    """A configured upstream service and its OpenAPI endpoint."""

    def __init__(self, name: str, url: str):
        self.name = name
        self.base = url.rstrip("/")
        self.openapi_url = f"{self.base}/openapi"

    def version_url(self, version: str) -> str:
        return f"{self.openapi_url}/{version}"

    def __repr__(self) -> str:
        return f"Service({self.name!r}, {self.base!r})"


class Scraper:
    """Gets OpenAPI specs from a collection of services and updates storage.

    Each run scrapes all services concurrently. Versions within a service are
    fetched in the order the service lists them. A failing service does not
    stop the others; its error is reported in the ScrapeError raised at the
    end of the run.
    """

    def __init__(
        self,
        cfg,
        store: Storage,
        *,
        client: httpx.AsyncClient | None = None,
        clock: Callable[[], datetime] | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.storage = store
        self.services = [Service(svc.name, svc.url) for svc in cfg.services]
        self.clock = clock or _utc_now
        self._client = client or httpx.AsyncClient(
            timeout=timeout,
            transport=metrics.DurationTransport(),
        )

    async def close(self):
        await self._client.aclose()

    async def run(self) -> None:
        """Scrape every service once.

        Raises ScrapeError naming each failed service. Successful services
        have already been written to storage when it is raised.
        """
        scrape_time = self.clock().astimezone(timezone.utc)
        start = time.perf_counter()
        errors: dict[str, Exception] = {}
        try:
            results = await asyncio.gather(
                *(self._timed_scrape(svc, scrape_time) for svc in self.services),
                return_exceptions=True,
            )
            cancelled = False
            for svc, result in zip(self.services, results):
                if isinstance(result, asyncio.CancelledError):
                    cancelled = True
                elif isinstance(result, BaseException):
                    errors[svc.name] = result
            if cancelled:
                raise asyncio.CancelledError()
        finally:
            metrics.run_duration.observe(time.perf_counter() - start)
            if errors:
                metrics.run_error.inc()
        if errors:
            raise ScrapeError(errors)
        logger.info("scraped %d service(s)", len(self.services))

    async def _timed_scrape(self, svc: Service, scrape_time: datetime) -> None:
        with metrics.scrape_duration.labels(service=svc.name).time():
            logger.debug("started scrape of %s", svc.name)
            try:
                await self.scrape(svc, scrape_time)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                metrics.scrape_error.labels(service=svc.name).inc()
                logger.error("error scraping service %s: %s", svc.name, exc)
                raise
            logger.debug("finished scrape of %s", svc.name)

    async def scrape(self, svc: Service, scrape_time: datetime) -> None:
        versions = await self.get_versions(svc)
        await self.storage.notify_versions(svc.name, versions, scrape_time)
        for version in versions:
            contents = await self.get_new_version(svc, version)
            if contents is None:
                continue
            await self.storage.notify_version(svc.name, version, contents, scrape_time)

    async def _request(self, method: str, url: str) -> httpx.Response:
        try:
            return await self._client.request(method, url)
        except httpx.HTTPError as exc:
            raise TransportError(f"{method} {url} failed: {exc}") from exc

    async def get_versions(self, svc: Service) -> list[str]:
        """List the versions a service advertises at ``GET /openapi``."""
        resp = await self._request("GET", svc.openapi_url)
        if resp.status_code != 200:
            raise _http_error(resp)
        try:
            versions = json.loads(resp.content)
        except ValueError as exc:
            raise TransportError(f"malformed version list from {svc.openapi_url}: {exc}") from exc
        if not isinstance(versions, list) or not all(isinstance(v, str) for v in versions):
            raise TransportError(f"version list from {svc.openapi_url} is not an array of strings")
        return versions

    async def has_new_version(self, svc: Service, version: str) -> bool:
        """Check the version's digest with HEAD to see whether it changed."""
        resp = await self._request("HEAD", svc.version_url(version))
        if resp.status_code == 405:
            # HEAD unsupported: fetch with GET.
            return True
        if resp.status_code != 200:
            raise _http_error(resp)
        digest = parse_digest_header(resp.headers.get("digest"))
        if not digest:
            return True
        return not await self.storage.has_version(svc.name, version, digest)

    async def get_new_version(self, svc: Service, version: str) -> bytes | None:
        """Fetch a version's spec, or None if storage already has it."""
        if not await self.has_new_version(svc, version):
            logger.debug("%s %s unchanged, skipping", svc.name, version)
            return None
        url = svc.version_url(version)
        resp = await self._request("GET", url)
        if resp.status_code != 200:
            raise _http_error(resp)
        if not _is_json(resp):
            raise TransportError(f"unexpected content type from {url}: {resp.headers.get('content-type', '')}")
        contents = resp.content
        try:
            doc = json.loads(contents)
        except ValueError as exc:
            raise TransportError(f"malformed spec from {url}: {exc}") from exc
        if not isinstance(doc, dict):
            raise TransportError(f"spec from {url} is not a JSON object")
        return contents
