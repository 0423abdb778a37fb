"""
Entrypoint for serverboot.

`bootstrap()` returns a constructed `ServerBootstrap` with its middleware
applied; `create_app()` returns only the ASGI application for external
servers (``uvicorn serverboot.main:create_app --factory``); `main()` is the
command-line entry point that also binds and serves.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Optional, Sequence

from fastapi import FastAPI

from serverboot.config import ConfigError, ServerConfig, load_config
from serverboot.observability.logging import configure_logging, get_logger
from serverboot.server import ServerBootstrap
from serverboot.server.exceptions import BindError, ServerError

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_START_FAILED = 1
EXIT_CONFIG_ERROR = 2


def bootstrap(config: Optional[ServerConfig] = None) -> ServerBootstrap:
    """
    Return a constructed server with its configured middleware applied.

    Downstream scripts can call this to obtain the server without creating
    framework globals at module import time.
    """

    server = ServerBootstrap(config or load_config())
    server.construct()
    server.apply_middleware()
    return server


def create_app() -> FastAPI:
    """ASGI application factory for external servers."""
    return bootstrap().app


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="serverboot",
        description="Start an HTTP listener with the configured middleware.",
    )
    parser.add_argument("--host", help="Interface to bind (default 0.0.0.0)")
    parser.add_argument("--port", type=int, help="TCP port to bind (default 3000)")
    parser.add_argument("--config", type=Path, help="Path to a serverboot.toml file")
    parser.add_argument("--env-file", type=Path, help="Path to a .env file")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        type=str.upper,
    )
    parser.add_argument("--log-format", choices=["json", "console"])
    parser.add_argument("--log-file", type=Path)
    for name, label in (
        ("cors", "CORS headers"),
        ("security-headers", "security response headers"),
        ("request-logging", "per-request logging"),
    ):
        parser.add_argument(
            f"--{name}",
            action=argparse.BooleanOptionalAction,
            default=None,
            help=f"Enable or disable {label}",
        )
    return parser


def _middleware_overrides(args: argparse.Namespace) -> dict:
    overrides = {}
    for section in ("cors", "security_headers", "request_logging"):
        value = getattr(args, section)
        if value is not None:
            overrides[section] = {"enabled": value}
    return overrides


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the server until it exits; returns a process exit code."""

    args = _build_parser().parse_args(argv)

    try:
        config = load_config(
            config_path=args.config,
            env_file=args.env_file,
            host=args.host,
            port=args.port,
            log_level=args.log_level,
            log_format=args.log_format,
            log_file=args.log_file,
            middleware=_middleware_overrides(args),
        )
    except ConfigError as exc:
        configure_logging()
        logger.error("server_config_invalid", error=str(exc))
        return EXIT_CONFIG_ERROR

    configure_logging(level=config.log_level, format=config.log_format, log_file=config.log_file)

    server = bootstrap(config)
    try:
        server.start()
    except BindError as exc:
        logger.error(
            "server_bind_failed",
            host=exc.host,
            port=exc.port,
            errno=exc.errno,
            reason=exc.reason,
        )
        return EXIT_START_FAILED
    except ServerError as exc:
        logger.error("server_start_failed", error=str(exc))
        return EXIT_START_FAILED
    except KeyboardInterrupt:
        logger.info("server_interrupted", port=server.bound_port)
    finally:
        server.stop()
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
