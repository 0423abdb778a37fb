"""Structured logging for serverboot.

structlog events and plain stdlib records (uvicorn's own startup and
shutdown messages, for instance) are rendered by the same
`structlog.stdlib.ProcessorFormatter`, so a JSON log stays JSON line by line.

Usage:
    from serverboot.observability import get_logger, configure_logging

    configure_logging(level="INFO", format="json")
    logger = get_logger(__name__)
    logger.info("server_started", port=3000)
"""

import logging
import logging.handlers
import sys
import uuid
from contextvars import ContextVar
from pathlib import Path
from typing import List, Optional

import structlog
from structlog.types import EventDict, Processor


# Correlation ID of the request currently being served
correlation_id_var: ContextVar[Optional[str]] = ContextVar(
    "correlation_id", default=None
)


def add_correlation_id(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Copy the active correlation ID into the event unless one is given."""
    correlation_id = correlation_id_var.get()
    if correlation_id and "correlation_id" not in event_dict:
        event_dict["correlation_id"] = correlation_id
    return event_dict


def _shared_processors() -> List[Processor]:
    # Run for structlog events and, as foreign_pre_chain, for stdlib records.
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        add_correlation_id,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]


def build_formatter(format: str = "console", colors: bool = False) -> logging.Formatter:
    """Return the formatter used by every handler on the root logger.

    Args:
        format: "json" for one JSON object per line, "console" for
            human-readable output
        colors: Colorize console output
    """
    if format == "json":
        final: List[Processor] = [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        final = [structlog.dev.ConsoleRenderer(colors=colors)]

    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=_shared_processors(),
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, *final],
    )


def configure_logging(
    level: str = "INFO",
    format: str = "console",
    log_file: Optional[Path] = None,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
) -> None:
    """Route structlog and stdlib logging through the root logger.

    Safe to call repeatedly: existing root handlers are closed and replaced.
    A rotating file handler is added when `log_file` is given; its parent
    directory is created on demand.

    Example:
        >>> configure_logging(level="DEBUG")
        >>> configure_logging(format="json", log_file=Path("logs/server.log"))
    """
    logging_level = getattr(logging, level.upper(), logging.INFO)

    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    handlers[0].setFormatter(build_formatter(format, colors=sys.stdout.isatty()))

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            filename=str(log_file),
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(build_formatter(format, colors=False))
        handlers.append(file_handler)

    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        handler.close()
        root_logger.removeHandler(handler)
    root_logger.setLevel(logging_level)
    for handler in handlers:
        handler.setLevel(logging_level)
        root_logger.addHandler(handler)

    structlog.configure(
        processors=_shared_processors()
        + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        # Module-level loggers re-read the configuration on every call.
        cache_logger_on_first_use=False,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger named `name` (typically __name__)."""
    return structlog.get_logger(name)


def set_correlation_id(correlation_id: Optional[str] = None) -> str:
    """Bind a correlation ID to the current context, generating one if None."""
    if correlation_id is None:
        correlation_id = f"req-{uuid.uuid4().hex[:12]}"
    correlation_id_var.set(correlation_id)
    return correlation_id


def clear_correlation_id() -> None:
    correlation_id_var.set(None)


def get_correlation_id() -> Optional[str]:
    return correlation_id_var.get()


__all__ = [
    "build_formatter",
    "configure_logging",
    "get_logger",
    "set_correlation_id",
    "clear_correlation_id",
    "get_correlation_id",
]
