"""Structured logging configuration using structlog.

Every entry carries the request context bound by the request tracking
middleware (``request_id``, then ``user_id`` once the caller is
authenticated), so the generation service's per-attempt lines can be
joined to the HTTP request that triggered them.
"""

import logging
import sys
from typing import Any, Optional

import structlog
from app.config import Settings, get_settings

# Event keys that may hold user prompts, model output or credentials
REDACTED_KEYS = frozenset({
    "api_key",
    "authorization",
    "content",
    "messages",
    "prompt",
    "raw",
    "secret_key",
})

QUIET_LOGGERS = {
    "uvicorn.access": logging.WARNING,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "hpack": logging.WARNING,
    "aiosqlite": logging.WARNING,
}


def redact_sensitive(_logger: Any, _method: str, event_dict: dict) -> dict:
    """Mask values of keys that must never reach the log sink."""
    for key in REDACTED_KEYS.intersection(event_dict):
        event_dict[key] = "[redacted]"
    return event_dict


def bind_request_context(**values: Any) -> None:
    """Attach values to every log line emitted while handling this request."""
    structlog.contextvars.bind_contextvars(**values)


def clear_request_context() -> None:
    structlog.contextvars.clear_contextvars()


def setup_logging(settings: Optional[Settings] = None) -> None:
    """Configure structlog and route stdlib logging through the same renderer.

    Console output in development (or with ``LOG_FORMAT=text``), one JSON
    object per line otherwise.
    """
    settings = settings or get_settings()

    shared_processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        redact_sensitive,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]

    if settings.is_development or settings.LOG_FORMAT == "text":
        renderer = structlog.dev.ConsoleRenderer()
    else:
        shared_processors.append(structlog.processors.dict_tracebacks)
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[*shared_processors, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))

    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.SQLALCHEMY_ECHO else logging.WARNING
    )
    for name, level in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(level)
