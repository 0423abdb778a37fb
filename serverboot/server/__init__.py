"""
Server bootstrap: construct an ASGI application, apply the configured
middleware, bind a TCP listener and serve it with uvicorn.

A `ServerBootstrap` owns its application and its listener socket for its
whole lifetime. Nothing is created at import time, so tests can run
construct-bind-teardown cycles against fresh instances:

    server = ServerBootstrap(ServerConfig(port=0))
    server.construct()
    server.apply_middleware()
    server.start(block=False)
    ...
    server.stop()
"""

from __future__ import annotations

import socket
import threading
import time
from enum import Enum
from typing import List, Optional

import uvicorn
from fastapi import FastAPI

from serverboot.config import MiddlewareConfig, ServerConfig
from serverboot.middleware import apply_middleware
from serverboot.observability.logging import get_logger
from serverboot.server.exceptions import (
    BindError,
    ServerError,
    ServerStateError,
    StartupTimeoutError,
)
from serverboot.server.network import display_addresses

logger = get_logger(__name__)

LISTEN_BACKLOG = 2048
_STARTUP_POLL_INTERVAL = 0.01


class ServerState(str, Enum):
    """Lifecycle of a bootstrap. There is no transition back to UNBOUND."""

    UNBOUND = "unbound"
    BOUND = "bound"
    STOPPED = "stopped"


def _url_host(address: str) -> str:
    return f"[{address}]" if ":" in address else address


class ServerBootstrap:
    """Owns one application object and one listener."""

    def __init__(self, config: Optional[ServerConfig] = None) -> None:
        self.config = config or ServerConfig()
        self._app: Optional[FastAPI] = None
        self._middleware: Optional[List[str]] = None
        self._socket: Optional[socket.socket] = None
        self._bound_port: Optional[int] = None
        self._server: Optional[uvicorn.Server] = None
        self._thread: Optional[threading.Thread] = None
        self._state = ServerState.UNBOUND
        self._lock = threading.Lock()

    # ------------------------------------------------------------------ #
    # Introspection
    # ------------------------------------------------------------------ #
    @property
    def state(self) -> ServerState:
        return self._state

    @property
    def app(self) -> FastAPI:
        """The application, constructing it on first access."""
        return self.construct()

    @property
    def bound_port(self) -> Optional[int]:
        """Actual listening port (resolves port 0), None until bound."""
        return self._bound_port

    @property
    def installed_middleware(self) -> List[str]:
        return list(self._middleware or [])

    @property
    def is_serving(self) -> bool:
        return bool(self._server is not None and self._server.started and not self._server.should_exit)

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #
    def construct(self) -> FastAPI:
        """
        Create the application with framework defaults.

        The interactive docs and OpenAPI schema routes are disabled so the
        route table stays empty and every request is answered with 404.
        """
        if self._app is None:
            self._app = FastAPI(
                title=self.config.app_name,
                docs_url=None,
                redoc_url=None,
                openapi_url=None,
            )
            logger.debug("application_constructed", app=self.config.app_name)
        return self._app

    def apply_middleware(self, config: Optional[MiddlewareConfig] = None) -> List[str]:
        """
        Install the middleware enumerated by `config`.

        Defaults to the bootstrap's configured middleware. Returns the names
        of the installed middleware; disabled entries are skipped.
        """
        if self._state is not ServerState.UNBOUND:
            raise ServerStateError(
                f"Middleware must be applied before binding (state={self._state.value})"
            )
        if self._middleware is not None:
            raise ServerStateError("Middleware has already been applied")

        self._middleware = apply_middleware(
            self.construct(), config or self.config.middleware
        )
        return list(self._middleware)

    def bind(self, port: Optional[int] = None) -> int:
        """
        Bind and listen on `(host, port)`; returns the bound port.

        Raises:
            BindError: the port is in use or cannot be bound.
            ServerStateError: the bootstrap is not UNBOUND.
        """
        with self._lock:
            if self._state is not ServerState.UNBOUND:
                raise ServerStateError(f"Cannot bind in state {self._state.value}")

            host = self.config.host
            port = self.config.port if port is None else port
            family = socket.AF_INET6 if ":" in host else socket.AF_INET
            sock = socket.socket(family, socket.SOCK_STREAM)
            try:
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
                sock.bind((host, port))
                sock.listen(LISTEN_BACKLOG)
            except OSError as exc:
                sock.close()
                raise BindError(host, port, exc.errno, exc.strerror or str(exc)) from exc

            self._socket = sock
            self._bound_port = sock.getsockname()[1]
            self._state = ServerState.BOUND
            logger.debug("listener_bound", host=host, port=self._bound_port)
            return self._bound_port

    def start(self, port: Optional[int] = None, *, block: bool = True) -> None:
        """
        Bind (unless already bound), log the startup diagnostics and serve.

        With `block=True` this returns once the server exits. With
        `block=False` the server runs on a daemon thread and this returns as
        soon as it reports started.

        Raises:
            BindError: the listener could not be bound.
            StartupTimeoutError: background startup exceeded `startup_timeout`.
            ServerStateError: already serving, or stopped.
        """
        if self._server is not None or self._state is ServerState.STOPPED:
            raise ServerStateError(f"Cannot start in state {self._state.value}")

        app = self.construct()
        if self._state is ServerState.UNBOUND:
            self.bind(port)
        elif port is not None and port not in (self._bound_port, 0):
            raise ServerStateError(
                f"Already bound to port {self._bound_port}, cannot start on {port}"
            )

        uvicorn_config = uvicorn.Config(
            app,
            host=self.config.host,
            port=self._bound_port,
            log_config=None,
            access_log=False,
            timeout_graceful_shutdown=max(1, round(self.config.shutdown_timeout)),
        )
        server = uvicorn.Server(uvicorn_config)
        self._server = server
        self.log_startup()

        if block:
            try:
                server.run(sockets=[self._socket])
            finally:
                self._release()
            return

        thread = threading.Thread(
            target=server.run,
            kwargs={"sockets": [self._socket]},
            name=f"serverboot-{self._bound_port}",
            daemon=True,
        )
        self._thread = thread
        thread.start()
        self._wait_until_started(server, thread)

    def stop(self, timeout: Optional[float] = None) -> None:
        """Ask the server to exit, wait for it and release the port."""
        if self._state is ServerState.STOPPED:
            return

        timeout = self.config.shutdown_timeout if timeout is None else timeout
        if self._server is not None:
            self._server.should_exit = True
        if self._thread is not None:
            self._thread.join(timeout)
            if self._thread.is_alive():
                logger.warning("server_forced_exit", port=self._bound_port, timeout=timeout)
                self._server.force_exit = True
                self._thread.join(timeout)
        self._release()

    def log_startup(self) -> List[str]:
        """Log the ready-state diagnostics and return them as text lines."""
        port = self._bound_port
        local_url = f"http://localhost:{port}"
        network_urls = [
            f"http://{_url_host(address)}:{port}"
            for address in display_addresses(self.config.host)
        ]

        logger.info("server_started", app=self.config.app_name, host=self.config.host, port=port)
        logger.info("server_url", scope="local", url=local_url)
        for url in network_urls:
            logger.info("server_url", scope="network", url=url)
        if not network_urls:
            logger.debug("network_address_unavailable", host=self.config.host)

        lines = [f"server started in {port}", f"local: {local_url}"]
        lines.extend(f"network: {url}" for url in network_urls)
        return lines

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #
    def _wait_until_started(self, server: uvicorn.Server, thread: threading.Thread) -> None:
        timeout = self.config.startup_timeout
        deadline = time.monotonic() + timeout
        while not server.started:
            if not thread.is_alive():
                self._release()
                raise ServerError(f"Server on port {self._bound_port} exited during startup")
            if time.monotonic() >= deadline:
                port = self._bound_port
                self.stop()
                raise StartupTimeoutError(port, timeout)
            time.sleep(_STARTUP_POLL_INTERVAL)

    def _release(self) -> None:
        """Close the listener and enter STOPPED; shared by every exit path."""
        with self._lock:
            if self._state is ServerState.STOPPED:
                return
            was_bound = self._state is ServerState.BOUND
            if self._socket is not None:
                self._socket.close()
                self._socket = None
            self._thread = None
            self._state = ServerState.STOPPED
        if was_bound:
            logger.info("server_stopped", port=self._bound_port)

    def __enter__(self) -> "ServerBootstrap":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()


__all__ = [
    "BindError",
    "ServerBootstrap",
    "ServerError",
    "ServerState",
    "ServerStateError",
    "StartupTimeoutError",
]
