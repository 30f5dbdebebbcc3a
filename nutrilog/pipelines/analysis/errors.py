"""Failure taxonomy for the analysis pipeline.

Stages raise these; only the message orchestrator decides whether a failure
is swallowed (apology reply, siblings continue) or escalated.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    MEDIA_UNAVAILABLE = "media_unavailable"
    MALFORMED_EXTRACTION = "malformed_extraction"
    PREPROCESS_DEGRADED = "preprocess_degraded"
    ANALYSIS_FAILED = "analysis_failed"
    PERSISTENCE_FAILED = "persistence_failed"
    DELIVERY_FAILED = "delivery_failed"


class PipelineError(RuntimeError):
    """Base class for analysis pipeline failures."""

    kind: ErrorKind = ErrorKind.ANALYSIS_FAILED


class MediaUnavailable(PipelineError):
    """Media lookup or download exhausted its retry budget."""

    kind = ErrorKind.MEDIA_UNAVAILABLE


class MalformedExtraction(PipelineError):
    """Model output could not be parsed into the expected record shape."""

    kind = ErrorKind.MALFORMED_EXTRACTION


class PreprocessDegraded(PipelineError):
    """Audio cleanup failed; the raw audio is used instead."""

    kind = ErrorKind.PREPROCESS_DEGRADED


class AnalysisFailed(PipelineError):
    """Both the primary and the fallback analysis paths failed."""

    kind = ErrorKind.ANALYSIS_FAILED

    def __init__(self, message: str, *, debug_reference: str | None = None) -> None:
        super().__init__(message)
        self.debug_reference = debug_reference


class PersistenceFailed(PipelineError):
    """The analysis log could not be stored."""

    kind = ErrorKind.PERSISTENCE_FAILED


class DeliveryFailed(PipelineError):
    """An outbound reply could not be delivered."""

    kind = ErrorKind.DELIVERY_FAILED


__all__ = [
    "ErrorKind",
    "PipelineError",
    "MediaUnavailable",
    "MalformedExtraction",
    "PreprocessDegraded",
    "AnalysisFailed",
    "PersistenceFailed",
    "DeliveryFailed",
]
