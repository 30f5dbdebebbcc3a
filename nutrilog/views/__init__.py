"""Pydantic schemas used as views."""

from .analysis import AnalyzeTextRequest, LogAnalysisResponse
from .common import ErrorResponse
from .webhook import WebhookChange, WebhookEntry, WebhookPayload, WebhookValue

__all__ = [
    "AnalyzeTextRequest",
    "ErrorResponse",
    "LogAnalysisResponse",
    "WebhookChange",
    "WebhookEntry",
    "WebhookPayload",
    "WebhookValue",
]
