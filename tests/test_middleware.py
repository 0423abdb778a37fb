"""
Middleware behaviour, exercised in-process through the ASGI interface.
"""

import httpx
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from structlog.testing import capture_logs

from serverboot.config import (
    CORSConfig,
    MiddlewareConfig,
    RequestLoggingConfig,
    SecurityHeadersConfig,
)
from serverboot.middleware import apply_middleware, build_security_headers
from serverboot.observability.metrics import get_metrics_output, get_request_count


def _app(config: MiddlewareConfig) -> FastAPI:
    app = FastAPI(docs_url=None, redoc_url=None, openapi_url=None)
    apply_middleware(app, config)
    return app


def _only(**sections) -> MiddlewareConfig:
    config = MiddlewareConfig.disabled()
    return config.model_copy(update=sections)


def test_everything_disabled_installs_nothing():
    app = FastAPI()
    assert apply_middleware(app, MiddlewareConfig.disabled()) == []
    assert app.user_middleware == []


def test_install_order():
    config = _only(
        cors=CORSConfig(enabled=True),
        security_headers=SecurityHeadersConfig(enabled=True),
        request_logging=RequestLoggingConfig(enabled=True),
    )
    assert apply_middleware(FastAPI(), config) == ["security_headers", "cors", "request_logging"]


@pytest.mark.asyncio
async def test_security_headers_on_not_found():
    app = _app(_only(security_headers=SecurityHeadersConfig(enabled=True, frame_options="DENY")))
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        response = await client.get("/missing")

    assert response.status_code == 404
    assert response.headers["x-content-type-options"] == "nosniff"
    assert response.headers["x-frame-options"] == "DENY"
    assert response.headers["referrer-policy"] == "no-referrer"
    assert response.headers["strict-transport-security"] == "max-age=15552000; includeSubDomains"
    assert response.headers["content-security-policy"].startswith("default-src 'self'")


def test_hsts_disabled_with_zero_max_age():
    headers = build_security_headers(SecurityHeadersConfig(hsts_max_age=0))
    assert "Strict-Transport-Security" not in headers
    assert headers["X-XSS-Protection"] == "0"


@pytest.mark.asyncio
async def test_security_headers_absent_when_disabled():
    transport = httpx.ASGITransport(app=_app(MiddlewareConfig.disabled()))
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        response = await client.get("/")

    assert response.status_code == 404
    assert "x-content-type-options" not in response.headers


def test_cors_restricts_to_configured_origins():
    app = _app(_only(cors=CORSConfig(enabled=True, allow_origins=["https://app.example.com"])))
    with TestClient(app) as client:
        allowed = client.get("/", headers={"Origin": "https://app.example.com"})
        denied = client.get("/", headers={"Origin": "https://evil.example.com"})

    assert allowed.status_code == 404
    assert allowed.headers["access-control-allow-origin"] == "https://app.example.com"
    assert "access-control-allow-origin" not in denied.headers


def test_cors_disabled_emits_no_cors_headers():
    with TestClient(_app(MiddlewareConfig.disabled())) as client:
        response = client.get("/", headers={"Origin": "https://app.example.com"})
    assert "access-control-allow-origin" not in response.headers


@pytest.mark.asyncio
async def test_request_logging_event_and_correlation_id():
    app = _app(_only(request_logging=RequestLoggingConfig(enabled=True)))
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        with capture_logs() as logs:
            response = await client.post("/orders", headers={"X-Request-ID": "req-abc123"})

    assert response.status_code == 404
    assert response.headers["x-request-id"] == "req-abc123"
    events = [entry for entry in logs if entry["event"] == "http_request"]
    assert len(events) == 1
    assert events[0]["method"] == "POST"
    assert events[0]["path"] == "/orders"
    assert events[0]["status"] == 404
    assert events[0]["duration_ms"] >= 0


def test_request_logging_generates_correlation_id():
    app = _app(_only(request_logging=RequestLoggingConfig(enabled=True, request_id_header="X-Trace")))
    with TestClient(app) as client:
        first = client.get("/")
        second = client.get("/")

    assert first.headers["x-trace"].startswith("req-")
    assert first.headers["x-trace"] != second.headers["x-trace"]


def test_request_logging_records_metrics():
    app = _app(_only(request_logging=RequestLoggingConfig(enabled=True)))
    before = get_request_count("DELETE", 404)

    with TestClient(app) as client:
        client.delete("/things/1")

    assert get_request_count("DELETE", 404) == before + 1
    assert b"serverboot_http_requests_total" in get_metrics_output()
