"""Stored HTTP request summaries."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, String

from .base import Base


class RequestLog(Base):
    """One row per handled request; paths only, never query strings."""

    __tablename__ = "request_logs"

    id = Column(Integer, primary_key=True)
    timestamp = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    method = Column(String(10), nullable=False)
    path = Column(String(512), nullable=False)
    route = Column(String(256), nullable=True, index=True)
    status_code = Column(Integer, nullable=False)
    client_ip = Column(String(64))
    duration_ms = Column(Integer)


__all__ = ["RequestLog"]
