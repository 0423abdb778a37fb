"""
Middleware registration for serverboot.

`apply_middleware` installs exactly the middleware a `MiddlewareConfig`
enables. Starlette wraps later additions around earlier ones, so the install
order below yields request logging outermost, then CORS, then security
headers closest to the application.
"""

from __future__ import annotations

from typing import List

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from serverboot.config import MiddlewareConfig
from serverboot.middleware.request_logging import RequestLoggingMiddleware
from serverboot.middleware.security import SecurityHeadersMiddleware, build_security_headers
from serverboot.observability.logging import get_logger

logger = get_logger(__name__)


def apply_middleware(app: FastAPI, config: MiddlewareConfig) -> List[str]:
    """
    Install the enabled middleware on `app`.

    Returns:
        Names of the installed middleware in installation order. Empty when
        every entry is disabled.
    """

    installed: List[str] = []

    if config.security_headers.enabled:
        app.add_middleware(SecurityHeadersMiddleware, config=config.security_headers)
        installed.append("security_headers")

    if config.cors.enabled:
        cors = config.cors
        app.add_middleware(
            CORSMiddleware,
            allow_origins=cors.allow_origins,
            allow_methods=cors.allow_methods,
            allow_headers=cors.allow_headers,
            allow_credentials=cors.allow_credentials,
            max_age=cors.max_age,
        )
        installed.append("cors")

    if config.request_logging.enabled:
        app.add_middleware(RequestLoggingMiddleware, config=config.request_logging)
        installed.append("request_logging")

    logger.debug("middleware_applied", middleware=installed)
    return installed


__all__ = [
    "apply_middleware",
    "build_security_headers",
    "RequestLoggingMiddleware",
    "SecurityHeadersMiddleware",
]
