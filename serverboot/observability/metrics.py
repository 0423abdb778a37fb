"""Prometheus-compatible request metrics for serverboot.

The registry is not exposed over HTTP (the server registers no routes);
embedding applications can export it with `get_metrics_output()`.

Usage:
    from serverboot.observability.metrics import observe_request

    observe_request("GET", 404, 0.002)
"""

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)


# Global registry for metrics
_registry = CollectorRegistry()

http_requests_total = Counter(
    "serverboot_http_requests_total",
    "Total number of HTTP requests by method and status code",
    ["method", "status"],
    registry=_registry,
)

http_request_duration_seconds = Histogram(
    "serverboot_http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method"],
    registry=_registry,
    buckets=(0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0, float("inf")),
)


def observe_request(method: str, status: int, duration_seconds: float) -> None:
    """Record one served request."""
    http_requests_total.labels(method=method, status=str(status)).inc()
    http_request_duration_seconds.labels(method=method).observe(duration_seconds)


def get_request_count(method: str, status: int) -> float:
    """Return the current request counter value for a method/status pair."""
    value = _registry.get_sample_value(
        "serverboot_http_requests_total",
        {"method": method, "status": str(status)},
    )
    return value or 0.0


def get_metrics_registry() -> CollectorRegistry:
    """Get the metrics registry."""
    return _registry


def get_metrics_output() -> bytes:
    """Render all metrics in Prometheus exposition format."""
    return generate_latest(_registry)


def get_metrics_content_type() -> str:
    """Content type for Prometheus metrics."""
    return CONTENT_TYPE_LATEST


__all__ = [
    "observe_request",
    "get_request_count",
    "get_metrics_registry",
    "get_metrics_output",
    "get_metrics_content_type",
]
