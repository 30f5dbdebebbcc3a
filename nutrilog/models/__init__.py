"""SQLAlchemy models."""

from .analysis_log import AnalysisLog  # noqa: F401
from .base import Base
from .log import RequestLog  # noqa: F401

__all__ = ["AnalysisLog", "Base", "RequestLog"]
