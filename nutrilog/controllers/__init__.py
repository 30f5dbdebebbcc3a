"""FastAPI routers acting as controllers."""

from . import analysis, webhook

__all__ = ["analysis", "webhook"]
