"""Structured logging configuration using structlog."""

import logging
import sys

import structlog

from src.config.loader import LoggingConfig

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}


def configure_logging(config: LoggingConfig) -> None:
    """Configure structlog and the stdlib root logger from the logging section.

    ``format: json`` renders JSON lines, ``text`` renders console output.
    ``output: file`` writes to stdout and appends to ``file_path``; if the
    file cannot be opened the error is logged and stdout alone is used.
    """
    level = _LEVELS.get(config.level, logging.INFO)

    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]
    if config.format == "text":
        processors.append(structlog.dev.ConsoleRenderer(colors=False))
    else:
        processors.append(structlog.processors.JSONRenderer(default=str))

    structlog.configure(
        processors=processors,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    file_error = None
    if config.output == "file":
        try:
            handlers.append(logging.FileHandler(config.file_path, mode="a"))
        except OSError as e:
            file_error = e

    logging.basicConfig(
        format="%(message)s",
        handlers=handlers,
        level=level,
        force=True,
    )

    if file_error is not None:
        get_logger(__name__).error(
            "Failed to open log file, using stdout instead",
            error=str(file_error),
            path=config.file_path,
        )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger by name."""
    return structlog.get_logger(name)
