"""One-line request logging, optionally stored in ``request_logs``."""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Any

from fastapi import Request
from sqlalchemy.exc import SQLAlchemyError
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response
from starlette.types import ASGIApp

from .telemetry import UNOBSERVED_PATHS, route_label

logger = logging.getLogger("nutrilog.middleware.structured")

_RESET = "\u001b[0m"
_STATUS_COLOURS = ((500, "\u001b[31m"), (400, "\u001b[33m"), (300, "\u001b[36m"), (200, "\u001b[32m"))


def status_colour(status_code: int) -> str:
    for floor, colour in _STATUS_COLOURS:
        if status_code >= floor:
            return colour
    return "\u001b[36m"


def format_line(entry: dict[str, Any]) -> str:
    """Render a request entry; the query string is never included."""

    fields = ("method", "path", "route", "status_code", "duration_ms", "client_ip")
    body = " ".join(
        f"{name}={entry[name] if entry.get(name) is not None else '-'}" for name in fields
    )
    return f"{status_colour(entry.get('status_code') or 0)}{entry['timestamp']} {body}{_RESET}"


class StructuredLoggingMiddleware(BaseHTTPMiddleware):
    """Log each request as one line.

    Only the path is recorded because the webhook verification query carries
    the verify token. Health and metrics probes are skipped.
    """

    def __init__(self, app: ASGIApp, *, persist: bool = False) -> None:
        super().__init__(app)
        self._persist = persist

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path in UNOBSERVED_PATHS:
            return await call_next(request)

        started = time.perf_counter()
        entry: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc),
            "method": request.method,
            "path": request.url.path,
            "client_ip": request.client.host if request.client else None,
        }

        try:
            response = await call_next(request)
        except Exception:
            entry.update(status_code=500, route=route_label(request))
            entry["duration_ms"] = _elapsed_ms(started)
            logger.exception(format_line(entry))
            raise

        entry.update(status_code=response.status_code, route=route_label(request))
        entry["duration_ms"] = _elapsed_ms(started)
        logger.info(format_line(entry))
        if self._persist and response.status_code != 307:
            await _store(entry)
        return response


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


async def _store(entry: dict[str, Any]) -> None:
    from nutrilog.database import session_scope
    from nutrilog.models.log import RequestLog

    async with session_scope() as session:
        session.add(
            RequestLog(
                timestamp=entry["timestamp"].replace(tzinfo=None),
                method=entry["method"],
                path=entry["path"],
                route=entry.get("route"),
                status_code=entry["status_code"],
                client_ip=entry.get("client_ip"),
                duration_ms=entry.get("duration_ms"),
            )
        )
        try:
            await session.commit()
        except SQLAlchemyError:
            await session.rollback()
            # Request logging never fails the request it describes
            logger.exception("Failed to store request log for %s", entry["path"])


__all__ = ["StructuredLoggingMiddleware", "format_line", "status_colour"]
