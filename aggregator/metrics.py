"""Prometheus metrics for scraping and collation."""

from __future__ import annotations

import re
import time

import httpx
from prometheus_client import Counter, Histogram

run_duration = Histogram(
    "aggregator_scraper_run_duration_seconds",
    "Time spent scraping service specs",
    buckets=(1, 5, 10, 25, 45, 60, 90),
)
run_error = Counter(
    "aggregator_scraper_run_error_total",
    "Count of errors during a scraper execution",
)
scrape_duration = Histogram(
    "aggregator_scraper_service_scrape_duration_seconds",
    "Time spent scraping a service",
    ["service"],
    buckets=(1, 5, 10, 25, 45, 60, 90),
)
scrape_error = Counter(
    "aggregator_scraper_service_scrape_error_total",
    "Count of errors encountered scraping services",
    ["service"],
)
request_duration = Histogram(
    "aggregator_scraper_service_scrape_http_duration_seconds",
    "Time spent on a service http call",
    ["host", "method", "status"],
    buckets=(0.025, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10),
)
collator_merge_error = Counter(
    "aggregator_collator_merge_error_total",
    "Count of errors merging revisions from collator",
    ["version"],
)

# Request durations are only observed for the scraped OpenAPI endpoints.
DURATION_ALLOW_LIST = [
    re.compile(r"^/openapi$"),
    re.compile(r"^/openapi/[1-9][0-9]{3}-[0-1][0-9]-[0-3][0-9](~\w+)?$"),
]


def path_allowed(path: str) -> bool:
    return any(check.search(path) for check in DURATION_ALLOW_LIST)


class DurationTransport(httpx.AsyncBaseTransport):
    """httpx transport wrapper recording upstream request durations."""

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None):
        self._transport = transport or httpx.AsyncHTTPTransport()

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        start = time.perf_counter()
        response = await self._transport.handle_async_request(request)
        if path_allowed(request.url.path):
            status = f"{response.status_code // 100}xx"
            request_duration.labels(
                host=request.url.netloc.decode("ascii"),
                method=request.method,
                status=status,
            ).observe(time.perf_counter() - start)
        return response

    async def aclose(self) -> None:
        await self._transport.aclose()
