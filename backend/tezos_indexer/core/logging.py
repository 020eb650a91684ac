"""Structured logging with structlog.

stdlib logging carries the handlers (stdout or file, optional Graylog GELF) and
structlog renders every record through a ``ProcessorFormatter``.
"""

import logging
import socket
import sys
from typing import Optional, Tuple

import graypy
import structlog

from tezos_indexer.core.config import LoggingSettings

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "fatal": logging.CRITICAL,
    "critical": logging.CRITICAL,
}


def _level(name: str) -> int:
    return _LEVELS.get(name.lower(), logging.INFO)


def _build_handler(settings: LoggingSettings) -> Tuple[logging.Handler, Optional[str]]:
    """Return the output handler and, when the log file could not be opened, why."""
    if settings.enable_file and settings.file_path:
        try:
            return logging.FileHandler(settings.file_path, mode="a", encoding="utf-8"), None
        except OSError as e:
            return logging.StreamHandler(sys.stdout), str(e)
    return logging.StreamHandler(sys.stdout), None


def setup_logging(settings: LoggingSettings) -> None:
    """Configure structlog and the root logger from the logging settings."""
    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    structlog.configure(
        processors=shared_processors + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    if settings.format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)

    formatter = structlog.stdlib.ProcessorFormatter(
        processor=renderer,
        foreign_pre_chain=shared_processors,
    )

    handler, file_error = _build_handler(settings)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(_level(settings.level))

    graylog = settings.graylog
    if graylog.enabled and graylog.host:
        gelf = graypy.GELFUDPHandler(
            graylog.host,
            graylog.port,
            facility=graylog.facility,
            localname=socket.gethostname(),
        )
        gelf.setFormatter(
            structlog.stdlib.ProcessorFormatter(
                processor=structlog.processors.JSONRenderer(),
                foreign_pre_chain=shared_processors,
            )
        )
        root.addHandler(gelf)

    # Uvicorn access lines are replaced by the request metrics middleware
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

    logger = structlog.get_logger()
    if file_error:
        logger.warning("Failed to open log file, using stdout", path=settings.file_path, error=file_error)
    logger.info(
        "Logging configured",
        level=settings.level,
        format=settings.format,
        file=settings.file_path if settings.enable_file else None,
        graylog=graylog.enabled,
    )


def bind_context(**kwargs) -> None:
    """Bind context variables for structured logging."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    """Clear context variables."""
    structlog.contextvars.clear_contextvars()
