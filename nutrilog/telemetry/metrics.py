"""Prometheus metrics definitions and helpers."""

from __future__ import annotations

from prometheus_client import Counter, Histogram

REQUEST_COUNT = Counter(
    "nutrilog_http_requests_total",
    "Total HTTP requests processed",
    ("method", "route", "status"),
)

REQUEST_LATENCY = Histogram(
    "nutrilog_http_request_duration_seconds",
    "HTTP request duration in seconds",
    ("method", "route"),
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
)

ERROR_COUNTER = Counter(
    "nutrilog_http_internal_errors_total",
    "Requests that ended in a 5xx response",
    ("method", "route"),
)

ANALYSIS_COUNTER = Counter(
    "nutrilog_analyses_total",
    "Inbound messages processed, by route and final outcome",
    ("route", "outcome"),
)

AUDIO_FALLBACK_COUNTER = Counter(
    "nutrilog_audio_fallback_total",
    "Voice notes that needed the loopback fallback path",
    ("outcome",),
)

MEDIA_DOWNLOAD_ATTEMPTS = Counter(
    "nutrilog_media_download_attempts_total",
    "Individual media download attempts against the Graph API",
    ("outcome",),
)

PREPROCESS_DEGRADED = Counter(
    "nutrilog_preprocess_degraded_total",
    "Voice notes analysed without ffmpeg cleanup",
)


def observe_request(
    method: str,
    route: str,
    status_code: int,
    duration_seconds: float,
) -> None:
    """Record metrics for a completed HTTP request."""

    route = route or "unknown"
    method = method or "UNKNOWN"
    REQUEST_COUNT.labels(method=method, route=route, status=str(status_code)).inc()
    REQUEST_LATENCY.labels(method=method, route=route).observe(max(duration_seconds, 0.0))
    if status_code >= 500:
        ERROR_COUNTER.labels(method=method, route=route).inc()


def record_analysis(route: str, outcome: str) -> None:
    ANALYSIS_COUNTER.labels(route=route or "unknown", outcome=outcome).inc()


def record_audio_fallback(outcome: str) -> None:
    AUDIO_FALLBACK_COUNTER.labels(outcome=outcome).inc()


def record_media_attempt(outcome: str) -> None:
    MEDIA_DOWNLOAD_ATTEMPTS.labels(outcome=outcome).inc()


def record_preprocess_degraded() -> None:
    PREPROCESS_DEGRADED.inc()
