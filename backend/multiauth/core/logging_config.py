"""
Structured logging configuration.

Sets up structured logging with JSON formatting in production and readable
console output in development.

Usage:
    from multiauth.core.logging_config import setup_logging, get_logger

    # In main.py or a script entry point
    setup_logging()

    # In your code
    logger = get_logger(__name__)
    logger.info("remote_login", provider_id="wiki", remote_name="Alice")
"""

import logging
import sys
from typing import Optional

import structlog
from pythonjsonlogger import jsonlogger

from multiauth.config import settings


def setup_logging(level: Optional[str] = None) -> None:
    """
    Configure structured logging for the application.

    Sets up both stdlib logging and structlog for structured log output.
    In production, logs are JSON formatted for easy parsing by monitoring tools.
    In development, logs are human-readable text.
    """
    use_json = settings.LOG_FORMAT == "json" or settings.ENVIRONMENT == "production"
    level_name = (level or settings.LOG_LEVEL).upper()

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level_name, logging.INFO),
    )

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.CallsiteParameterAdder(
            parameters=[
                structlog.processors.CallsiteParameter.FILENAME,
                structlog.processors.CallsiteParameter.LINENO,
                structlog.processors.CallsiteParameter.FUNC_NAME,
            ],
        ),
    ]

    if use_json:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    _configure_uvicorn_logging(use_json)

    # Silence noisy loggers in production
    if settings.ENVIRONMENT == "production":
        logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("authlib").setLevel(logging.WARNING)


def _configure_uvicorn_logging(use_json: bool = False) -> None:
    """Configure uvicorn's access and error logs with JSON formatting."""
    if use_json:
        formatter = jsonlogger.JsonFormatter(
            "%(asctime)s %(name)s %(levelname)s %(message)s",
            rename_fields={"asctime": "timestamp", "levelname": "level"},
        )
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(formatter)

        for logger_name in ["uvicorn", "uvicorn.access", "uvicorn.error"]:
            logger = logging.getLogger(logger_name)
            logger.handlers.clear()
            logger.addHandler(handler)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Structured logger with context support

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.info("migration_started", provider_id="wiki", total=3)
    """
    return structlog.get_logger(name)
