"""Prometheus request metrics."""

from __future__ import annotations

import time

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from nutrilog.telemetry import observe_request

# Scrapes and probes would otherwise dominate the request counters
UNOBSERVED_PATHS = frozenset({"/metrics", "/health"})


def route_label(request: Request) -> str:
    """Matched route template, falling back to the raw path."""

    route = request.scope.get("route")
    return getattr(route, "path", None) or request.url.path


class TelemetryMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path in UNOBSERVED_PATHS:
            return await call_next(request)

        started = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            observe_request(
                request.method,
                route_label(request),
                status_code,
                time.perf_counter() - started,
            )


__all__ = ["TelemetryMiddleware", "UNOBSERVED_PATHS", "route_label"]
