"""Security response headers (helmet-style defaults)."""

from __future__ import annotations

from typing import Dict

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from serverboot.config import SecurityHeadersConfig


def build_security_headers(config: SecurityHeadersConfig) -> Dict[str, str]:
    """Return the header set added to every response."""

    headers = {
        "Content-Security-Policy": config.content_security_policy,
        "Cross-Origin-Opener-Policy": "same-origin",
        "Cross-Origin-Resource-Policy": "same-origin",
        "Origin-Agent-Cluster": "?1",
        "Referrer-Policy": "no-referrer",
        "X-Content-Type-Options": "nosniff",
        "X-DNS-Prefetch-Control": "off",
        "X-Download-Options": "noopen",
        "X-Frame-Options": config.frame_options,
        "X-Permitted-Cross-Domain-Policies": "none",
        "X-XSS-Protection": "0",
    }
    if config.hsts_max_age > 0:
        headers["Strict-Transport-Security"] = (
            f"max-age={config.hsts_max_age}; includeSubDomains"
        )
    return headers


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Adds security headers without overwriting ones the app already set."""

    def __init__(self, app: ASGIApp, config: SecurityHeadersConfig) -> None:
        super().__init__(app)
        self.headers = build_security_headers(config)

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        response = await call_next(request)
        for name, value in self.headers.items():
            response.headers.setdefault(name, value)
        return response


__all__ = ["SecurityHeadersMiddleware", "build_security_headers"]
