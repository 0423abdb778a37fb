"""Domain-specific exceptions for the server bootstrap."""

from __future__ import annotations

from typing import Optional


class ServerError(RuntimeError):
    """Base exception for all bootstrap failures."""


class BindError(ServerError, OSError):
    """
    Raised when the listener cannot be bound.

    Typical causes are a port that is already in use or a privileged port
    without the required permissions. The original `OSError` is chained as
    `__cause__` and its errno is preserved.
    """

    def __init__(self, host: str, port: int, errno: Optional[int], reason: str):
        super().__init__(f"Cannot bind {host}:{port}: {reason}")
        self.host = host
        self.port = port
        self.errno = errno
        self.reason = reason


class StartupTimeoutError(ServerError):
    """Raised when a background server does not report started in time."""

    def __init__(self, port: int, timeout: float):
        super().__init__(f"Server on port {port} did not start within {timeout:.1f}s")
        self.port = port
        self.timeout = timeout


class ServerStateError(ServerError):
    """Raised when an operation is not allowed in the current lifecycle state."""


__all__ = [
    "ServerError",
    "BindError",
    "StartupTimeoutError",
    "ServerStateError",
]
