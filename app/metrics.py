"""
Prometheus metrics for the messages API.

This module provides:
- HTTP request counter (method, path, status)
- Message operation outcome counter (action, result)
- Request latency histogram (method, path)

Metrics are stored in-memory using prometheus-client.
"""

import re

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST


# =============================================================================
# Metric Definitions
# =============================================================================

# HTTP request counter with labels for method, path, and status code
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    labelnames=["method", "path", "status"]
)

# Message operation outcome counter
# action: get, send, mark_read
# result: ok, unauthorized, not_found, recipient_not_found
message_requests_total = Counter(
    "message_requests_total",
    "Total message operation outcomes",
    labelnames=["action", "result"]
)

# Request latency histogram in seconds
request_latency_seconds = Histogram(
    "request_latency_seconds",
    "Request latency in seconds",
    labelnames=["method", "path"]
)

_NUMERIC_SEGMENT = re.compile(r"/\d+(?=/|$)")


# =============================================================================
# Helper Functions
# =============================================================================

def normalize_path(path: str) -> str:
    """
    Collapse ids in a request path to keep label cardinality bounded.

    /messages/42/read -> /messages/{id}/read
    """
    return _NUMERIC_SEGMENT.sub("/{id}", path.split("?")[0])


def record_http_request(method: str, path: str, status: int, latency_seconds: float) -> None:
    """
    Record an HTTP request in metrics.

    Args:
        method: HTTP method (GET, POST, etc.)
        path: Request path
        status: HTTP status code
        latency_seconds: Request processing time in seconds
    """
    normalized_path = normalize_path(path)

    http_requests_total.labels(
        method=method,
        path=normalized_path,
        status=str(status)
    ).inc()

    request_latency_seconds.labels(
        method=method,
        path=normalized_path
    ).observe(latency_seconds)


def record_message_outcome(action: str, result: str) -> None:
    """
    Record the outcome of a message operation.

    Args:
        action: One of "get", "send", "mark_read"
        result: One of "ok", "unauthorized", "not_found", "recipient_not_found"
    """
    message_requests_total.labels(action=action, result=result).inc()


def get_metrics() -> bytes:
    """Generate Prometheus exposition format metrics."""
    return generate_latest()


def get_metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
