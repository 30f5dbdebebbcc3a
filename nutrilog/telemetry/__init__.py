"""Telemetry helpers and metrics."""

from .metrics import (
    ANALYSIS_COUNTER,
    AUDIO_FALLBACK_COUNTER,
    ERROR_COUNTER,
    MEDIA_DOWNLOAD_ATTEMPTS,
    PREPROCESS_DEGRADED,
    REQUEST_COUNT,
    REQUEST_LATENCY,
    observe_request,
    record_analysis,
    record_audio_fallback,
    record_media_attempt,
    record_preprocess_degraded,
)

__all__ = [
    "ANALYSIS_COUNTER",
    "AUDIO_FALLBACK_COUNTER",
    "ERROR_COUNTER",
    "MEDIA_DOWNLOAD_ATTEMPTS",
    "PREPROCESS_DEGRADED",
    "REQUEST_COUNT",
    "REQUEST_LATENCY",
    "observe_request",
    "record_analysis",
    "record_audio_fallback",
    "record_media_attempt",
    "record_preprocess_degraded",
]
