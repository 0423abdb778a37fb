"""
Global pytest configuration for serverboot

This file provides shared fixtures and enforces Python version requirements.
"""

from __future__ import annotations

import logging
import os
import socket
import sys
from typing import Callable, Iterator, List

import pytest
import structlog

from serverboot.config import MiddlewareConfig, ServerConfig
from serverboot.server import ServerBootstrap

_MIN_PY_VERSION = (3, 11)


def _verify_python_version() -> str:
    """Return the interpreter version string or exit if <3.11."""
    version_info = sys.version_info
    version_str = ".".join(map(str, version_info[:3]))
    if version_info < _MIN_PY_VERSION:
        pytest.exit(
            f"ERROR: pytest must run on Python 3.11+ (detected {version_str}).",
            returncode=1,
        )
    return version_str


def pytest_report_header(config: pytest.Config) -> str:
    version_str = _verify_python_version()
    return f"Python interpreter verified for pytest: {version_str}"


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path, monkeypatch) -> Iterator[None]:
    """Run every test from an empty directory with no serverboot env vars."""
    saved = dict(os.environ)
    for key in list(os.environ):
        if key.startswith("SERVERBOOT_") or key == "PORT":
            monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path)
    yield
    os.environ.clear()
    os.environ.update(saved)


@pytest.fixture(autouse=True)
def reset_logging() -> Iterator[None]:
    """Undo any `configure_logging` call made by a test."""
    root_logger = logging.getLogger()
    level = root_logger.level
    before = list(root_logger.handlers)
    yield
    for handler in list(root_logger.handlers):
        if handler not in before:
            handler.close()
            root_logger.removeHandler(handler)
    root_logger.setLevel(level)
    structlog.reset_defaults()


@pytest.fixture
def free_port() -> int:
    """Return a TCP port that was free a moment ago on 127.0.0.1."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest.fixture
def occupied_port() -> Iterator[int]:
    """A port held by a listening socket for the duration of the test."""
    holder = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    holder.bind(("127.0.0.1", 0))
    holder.listen(1)
    try:
        yield holder.getsockname()[1]
    finally:
        holder.close()


@pytest.fixture
def make_server() -> Iterator[Callable[..., ServerBootstrap]]:
    """Factory for loopback servers that are always stopped after the test."""
    created: List[ServerBootstrap] = []

    def _factory(port: int = 0, middleware: MiddlewareConfig | None = None, **kwargs) -> ServerBootstrap:
        config = ServerConfig(
            host="127.0.0.1",
            port=port,
            middleware=middleware or MiddlewareConfig(),
            startup_timeout=kwargs.pop("startup_timeout", 5.0),
            shutdown_timeout=kwargs.pop("shutdown_timeout", 2.0),
            **kwargs,
        )
        server = ServerBootstrap(config)
        created.append(server)
        return server

    yield _factory

    for server in created:
        server.stop()
