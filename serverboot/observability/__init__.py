"""Observability helpers for serverboot.

Components:
    - logging: Structured logging with structlog
    - metrics: Prometheus request metrics

Usage:
    from serverboot.observability import get_logger, configure_logging

    configure_logging(level="INFO", format="json")
    logger = get_logger(__name__)
    logger.info("server_started", port=3000)
"""

from serverboot.observability.logging import (
    clear_correlation_id,
    configure_logging,
    get_correlation_id,
    get_logger,
    set_correlation_id,
)
from serverboot.observability.metrics import (
    get_metrics_output,
    get_metrics_registry,
    observe_request,
)

__all__ = [
    "get_logger",
    "configure_logging",
    "set_correlation_id",
    "clear_correlation_id",
    "get_correlation_id",
    "observe_request",
    "get_metrics_output",
    "get_metrics_registry",
]
