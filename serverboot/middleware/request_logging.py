"""Structured per-request access logging.

Each request produces a single `http_request` event carrying the method,
path, status code, latency and correlation id. The correlation id comes from
the configured request-id header when the client sends one and is echoed back
on the response.
"""

from __future__ import annotations

import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from serverboot.config import RequestLoggingConfig
from serverboot.observability.logging import correlation_id_var, get_logger, set_correlation_id
from serverboot.observability.metrics import observe_request

logger = get_logger(__name__)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs every request and records request metrics."""

    def __init__(self, app: ASGIApp, config: RequestLoggingConfig) -> None:
        super().__init__(app)
        self.request_id_header = config.request_id_header

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        token = correlation_id_var.set(None)
        correlation_id = set_correlation_id(request.headers.get(self.request_id_header) or None)
        client = f"{request.client.host}:{request.client.port}" if request.client else "-"
        start = time.perf_counter()
        try:
            try:
                response = await call_next(request)
            except Exception:
                duration = time.perf_counter() - start
                observe_request(request.method, 500, duration)
                logger.exception(
                    "http_request_failed",
                    method=request.method,
                    path=request.url.path,
                    duration_ms=round(duration * 1000, 3),
                    client=client,
                )
                raise

            duration = time.perf_counter() - start
            observe_request(request.method, response.status_code, duration)
            logger.info(
                "http_request",
                method=request.method,
                path=request.url.path,
                status=response.status_code,
                duration_ms=round(duration * 1000, 3),
                client=client,
            )
            response.headers[self.request_id_header] = correlation_id
            return response
        finally:
            correlation_id_var.reset(token)


__all__ = ["RequestLoggingMiddleware"]
