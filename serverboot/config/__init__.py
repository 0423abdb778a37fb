"""
Configuration loading for serverboot.

Configuration values are resolved using the following precedence:

1. Explicit overrides passed to `load_config`
2. Environment variables (e.g., SERVERBOOT_PORT), including values loaded
   from a `.env` file
3. `serverboot.toml` if present in the working directory
4. Built-in defaults
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import tomllib
from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

__all__ = [
    "CORSConfig",
    "ConfigError",
    "MiddlewareConfig",
    "RequestLoggingConfig",
    "SecurityHeadersConfig",
    "ServerConfig",
    "load_config",
]


ENV_PREFIX = "SERVERBOOT_"
DEFAULT_CONFIG_FILE = Path("serverboot.toml")
DEFAULT_PORT = 3000
DEFAULT_CSP = (
    "default-src 'self';base-uri 'self';font-src 'self' https: data:;"
    "form-action 'self';frame-ancestors 'self';img-src 'self' data:;"
    "object-src 'none';script-src 'self';script-src-attr 'none';"
    "style-src 'self' https: 'unsafe-inline';upgrade-insecure-requests"
)

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


class ConfigError(RuntimeError):
    """Raised when configuration cannot be loaded or validated."""


class CORSConfig(BaseModel):
    """Cross-origin resource sharing policy."""

    enabled: bool = Field(False, description="Whether CORS headers are emitted")
    allow_origins: List[str] = Field(default_factory=lambda: ["*"])
    allow_methods: List[str] = Field(
        default_factory=lambda: ["GET", "HEAD", "PUT", "PATCH", "POST", "DELETE"]
    )
    allow_headers: List[str] = Field(default_factory=list)
    allow_credentials: bool = False
    max_age: int = Field(600, ge=0)

    @field_validator("allow_origins", "allow_methods", "allow_headers", mode="before")
    @classmethod
    def _split_csv(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value


class SecurityHeadersConfig(BaseModel):
    """Security response headers added to every response."""

    enabled: bool = Field(True, description="Whether security headers are added")
    hsts_max_age: int = Field(15552000, ge=0, description="HSTS max-age in seconds")
    content_security_policy: str = Field(DEFAULT_CSP, min_length=1)
    frame_options: str = Field("SAMEORIGIN", pattern=r"^(DENY|SAMEORIGIN)$")


class RequestLoggingConfig(BaseModel):
    """Per-request structured access logging."""

    enabled: bool = Field(True, description="Whether requests are logged")
    request_id_header: str = Field("X-Request-ID", min_length=1)


class MiddlewareConfig(BaseModel):
    """Enumerates every optional middleware and whether it is installed."""

    cors: CORSConfig = Field(default_factory=CORSConfig)
    security_headers: SecurityHeadersConfig = Field(default_factory=SecurityHeadersConfig)
    request_logging: RequestLoggingConfig = Field(default_factory=RequestLoggingConfig)

    @classmethod
    def disabled(cls) -> "MiddlewareConfig":
        """Configuration with every middleware switched off."""

        return cls(
            cors=CORSConfig(enabled=False),
            security_headers=SecurityHeadersConfig(enabled=False),
            request_logging=RequestLoggingConfig(enabled=False),
        )


class ServerConfig(BaseModel):
    """Top-level configuration for a server bootstrap."""

    host: str = Field("0.0.0.0", min_length=1, description="Interface to bind")
    port: int = Field(DEFAULT_PORT, ge=0, le=65535, description="TCP port (0 = ephemeral)")
    app_name: str = Field("serverboot", min_length=1)
    startup_timeout: float = Field(10.0, gt=0.0)
    shutdown_timeout: float = Field(5.0, gt=0.0)
    log_level: str = Field("INFO")
    log_format: str = Field("console", pattern=r"^(json|console)$")
    log_file: Optional[Path] = None
    middleware: MiddlewareConfig = Field(default_factory=MiddlewareConfig)

    model_config = ConfigDict(arbitrary_types_allowed=True)

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalise_level(cls, value: Any) -> str:
        level = str(value).upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level: {value!r}")
        return level

    @field_validator("log_file", mode="before")
    @classmethod
    def _coerce_path(cls, value: Any) -> Optional[Path]:
        if value in (None, ""):
            return None
        return Path(value) if not isinstance(value, Path) else value


def load_config(
    config_path: Optional[Path | str] = None,
    env_file: Optional[Path | str] = None,
    **overrides: Any,
) -> ServerConfig:
    """
    Load server configuration from overrides/environment/file/defaults.

    Args:
        config_path: Optional explicit path to a `serverboot.toml` file.
        env_file: Optional `.env` file; defaults to `.env` discovered from
            the working directory. Existing environment variables win.
        **overrides: Explicit values for top-level `ServerConfig` fields.
            `None` values are ignored. A `middleware` override may be a
            `MiddlewareConfig` or a nested dict merged over the other sources.

    Returns:
        ServerConfig populated with the resolved values.

    Raises:
        ConfigError: if the config path does not exist, parsing fails or the
            resolved values do not validate.
    """

    _load_env_file(env_file)
    raw_data = _load_toml_data(config_path)

    server_section: Dict[str, Any] = dict(_table(raw_data, "server"))
    middleware_table = _table(raw_data, "middleware")
    middleware_section: Dict[str, Any] = {
        name: dict(_table(middleware_table, name, prefix="middleware."))
        for name in middleware_table
    }

    _apply_env(server_section, middleware_section)

    middleware_override = overrides.pop("middleware", None)
    for key, value in overrides.items():
        if value is not None:
            server_section[key] = value

    try:
        if isinstance(middleware_override, MiddlewareConfig):
            middleware = middleware_override
        else:
            for name, values in (middleware_override or {}).items():
                middleware_section.setdefault(name, {}).update(values)
            middleware = MiddlewareConfig.model_validate(middleware_section)
        return ServerConfig.model_validate({**server_section, "middleware": middleware})
    except ValidationError as exc:
        raise ConfigError(f"Invalid server configuration: {exc}") from exc


def _table(data: Dict[str, Any], key: str, prefix: str = "") -> Dict[str, Any]:
    value = data.get(key, {})
    if not isinstance(value, dict):
        raise ConfigError(
            f"[{prefix}{key}] must be a table, got {type(value).__name__}"
        )
    return value


def _load_env_file(env_file: Optional[Path | str]) -> None:
    if env_file is None:
        load_dotenv(find_dotenv(usecwd=True), override=False)
        return
    path = Path(env_file)
    if not path.exists():
        raise ConfigError(f"Environment file not found: {path}")
    load_dotenv(dotenv_path=path, override=False)


def _load_toml_data(config_path: Optional[Path | str]) -> Dict[str, Any]:
    if config_path is None:
        path = DEFAULT_CONFIG_FILE
        if not path.exists():
            return {}
    else:
        path = Path(config_path)
        if not path.exists():
            raise ConfigError(f"Configuration file not found: {path}")

    try:
        with path.open("rb") as handle:
            return tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Failed to parse {path}: {exc}") from exc


def _apply_env(server: Dict[str, Any], middleware: Dict[str, Dict[str, Any]]) -> None:
    port = _env("PORT") or os.getenv("PORT")
    if port:
        server["port"] = port

    for field_name in (
        "host",
        "app_name",
        "startup_timeout",
        "shutdown_timeout",
        "log_level",
        "log_format",
        "log_file",
    ):
        value = _env(field_name.upper())
        if value is not None:
            server[field_name] = value

    toggles = {
        "CORS_ENABLED": "cors",
        "SECURITY_HEADERS_ENABLED": "security_headers",
        "REQUEST_LOGGING_ENABLED": "request_logging",
    }
    for env_name, section in toggles.items():
        value = _env(env_name)
        if value is not None:
            middleware.setdefault(section, {})["enabled"] = _parse_bool(env_name, value)

    origins = _env("CORS_ORIGINS")
    if origins is not None:
        middleware.setdefault("cors", {})["allow_origins"] = origins


def _env(name: str) -> Optional[str]:
    value = os.getenv(f"{ENV_PREFIX}{name}")
    if value is None or value.strip() == "":
        return None
    return value.strip()


def _parse_bool(name: str, value: str) -> bool:
    lowered = value.lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ConfigError(f"{ENV_PREFIX}{name} must be a boolean, got {value!r}")
