"""Async engine and sessions for the analysis and request logs."""

from __future__ import annotations

import logging
import re
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from nutrilog.config.settings import DatabaseConfig, settings

# Registers the tables on Base.metadata before create_all
from nutrilog.models import AnalysisLog, Base, RequestLog  # noqa: F401

logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def schema_for(config: DatabaseConfig) -> str | None:
    """Configured schema, or None when unset or not a plain SQL identifier."""

    schema = (config.schema_name or "").strip()
    if not schema:
        return None
    if not _IDENTIFIER.fullmatch(schema):
        logger.warning("Ignoring invalid schema name %r; using the default search_path", schema)
        return None
    return schema


def build_engine(config: DatabaseConfig, *, echo: bool = False) -> AsyncEngine:
    options: dict[str, Any] = {"echo": echo, "pool_pre_ping": True}
    if config.serverless:
        # Serverless databases must be able to pause between requests
        options["poolclass"] = NullPool
    return create_async_engine(config.url, **options)


SCHEMA = schema_for(settings.database)
if SCHEMA:
    for table in Base.metadata.tables.values():
        table.schema = table.schema or SCHEMA

engine: AsyncEngine = build_engine(settings.database, echo=settings.debug)
SessionFactory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


async def _use_schema(target: Any) -> None:
    if SCHEMA:
        await target.execute(text(f'SET search_path TO "{SCHEMA}", public'))


@asynccontextmanager
async def session_scope() -> AsyncIterator[AsyncSession]:
    async with SessionFactory() as session:
        await _use_schema(session)
        yield session


async def init_models() -> None:
    """Create the log tables (and the schema, when one is configured)."""

    async with engine.begin() as conn:
        if SCHEMA:
            await conn.execute(text(f'CREATE SCHEMA IF NOT EXISTS "{SCHEMA}"'))
        await _use_schema(conn)
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Log tables ready in schema %s", SCHEMA or "(default)")


async def dispose_engine() -> None:
    await engine.dispose()


__all__ = ["SessionFactory", "engine", "init_models", "dispose_engine", "session_scope"]
