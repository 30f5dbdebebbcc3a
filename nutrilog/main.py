"""Application entry point and FastAPI app factory."""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
import sys
from pathlib import Path
from typing import Any

import uvicorn
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from .config.dependencies import build_pipeline
from .config.settings import Settings, settings
from .controllers import analysis, webhook
from .database import dispose_engine, init_models
from .middleware import StructuredLoggingMiddleware, TelemetryMiddleware

logger = logging.getLogger(__name__)

_DETAILED = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
_BRIEF = "%(asctime)s | %(levelname)s | %(message)s"
_QUIET_LIBRARIES = ("botocore", "boto3", "urllib3", "httpx", "sqlalchemy.engine")


def _file_handler(path: str, max_bytes: int, fmt: str) -> RotatingFileHandler:
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(target, maxBytes=max_bytes, backupCount=5, encoding="utf-8")
    handler.setFormatter(logging.Formatter(fmt))
    return handler


def _dedicated(name: str, *handlers: logging.Handler, propagate: bool = True) -> None:
    dedicated = logging.getLogger(name)
    dedicated.handlers.clear()
    for handler in handlers:
        dedicated.addHandler(handler)
    dedicated.setLevel(logging.INFO)
    dedicated.propagate = propagate


def _configure_logging(app_settings: Settings) -> None:
    """Root logs to stdout and file; pipeline and transcripts get their own files.

    Request lines go to stdout only, already colourised by the middleware.
    """

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(logging.Formatter(_DETAILED))

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(console)
    root_logger.addHandler(_file_handler(app_settings.log_file, 1_000_000, _DETAILED))
    root_logger.setLevel(logging.DEBUG if app_settings.debug else logging.INFO)

    request_console = logging.StreamHandler(sys.stdout)
    request_console.setFormatter(logging.Formatter("%(message)s"))
    _dedicated("nutrilog.middleware.structured", request_console, propagate=False)
    _dedicated(
        "nutrilog.pipeline",
        _file_handler(app_settings.pipeline_log_file, 500_000, _BRIEF),
    )
    _dedicated(
        "nutrilog.logs.transcript",
        _file_handler(app_settings.transcript_log_file, 500_000, _BRIEF),
    )

    for name in _QUIET_LIBRARIES:
        logging.getLogger(name).setLevel(logging.WARNING)


def create_app(app_settings: Settings = settings) -> FastAPI:
    """Create and configure the FastAPI application."""

    _configure_logging(app_settings)

    app = FastAPI(
        title=app_settings.app_name,
        version=app_settings.app_version,
        debug=app_settings.debug,
        description="WhatsApp food and workout logging API",
    )
    app.state.pipeline = build_pipeline(app_settings)

    app.add_middleware(TelemetryMiddleware)
    app.add_middleware(
        StructuredLoggingMiddleware,
        persist=app_settings.persist_request_logs,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_origins,
        allow_credentials=app_settings.cors_allow_credentials,
        allow_methods=app_settings.cors_allow_methods,
        allow_headers=app_settings.cors_allow_headers,
    )

    app.include_router(webhook.router)
    app.include_router(analysis.router)

    @app.get("/", include_in_schema=False)
    async def root() -> dict[str, str]:
        return {"service": app_settings.app_name, "webhook": "/whatsapp-webhook"}

    @app.get("/health", include_in_schema=False)
    async def health_check() -> dict[str, Any]:
        """Liveness plus whether the WhatsApp credentials are configured."""

        return {
            "status": "healthy",
            "version": app_settings.app_version,
            "whatsapp_configured": bool(
                app_settings.meta.page_access_token.get_secret_value()
                and app_settings.meta.phone_number_id
            ),
        }

    @app.get("/metrics", include_in_schema=False)
    async def metrics() -> Response:
        """Expose application metrics for Prometheus scraping."""

        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request, exc):
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request, exc):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )

    @app.on_event("startup")
    async def startup_event() -> None:
        if app_settings.init_db_on_startup:
            await init_models()

    @app.on_event("shutdown")
    async def shutdown_event() -> None:
        await dispose_engine()

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(
        "nutrilog.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
