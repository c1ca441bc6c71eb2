"""Middleware that records request durations as a Prometheus histogram."""

import time

from prometheus_client import Histogram
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

request_duration = Histogram(
    "aggregator_http_request_duration_seconds",
    "Time spent serving HTTP requests",
    ["method", "route", "status"],
)

# Scrapes of /metrics are not themselves recorded
_SKIP_ROUTES = ("/metrics",)


class RequestMetricsMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        start = time.perf_counter()
        response = await call_next(request)
        duration = time.perf_counter() - start

        # Get the matched route template from FastAPI
        route = request.scope.get("route")
        route_template = route.path if route else "unmatched"

        if route_template in _SKIP_ROUTES:
            return response

        request_duration.labels(
            method=request.method,
            route=route_template,
            status=str(response.status_code),
        ).observe(duration)
        return response
