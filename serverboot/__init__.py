"""
serverboot: a minimal HTTP server bootstrap.

* `serverboot.config` - pydantic settings resolved from args, env, `.env`
  and `serverboot.toml`.
* `serverboot.middleware` - optional CORS, security header and request
  logging middleware.
* `serverboot.server` - the `ServerBootstrap` lifecycle object.
* `serverboot.main` - application factory and command-line entry point.
"""

from __future__ import annotations

__version__ = "0.1.0"

from serverboot.config import MiddlewareConfig, ServerConfig, load_config
from serverboot.server import ServerBootstrap, ServerState

__all__ = [
    "__version__",
    "MiddlewareConfig",
    "ServerBootstrap",
    "ServerConfig",
    "ServerState",
    "load_config",
]
