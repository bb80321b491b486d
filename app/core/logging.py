"""Structured logging setup using structlog.

Every log line is an event name plus key/value fields, e.g.::

    search_completed namespace=serp kind=video result_count=12 attempts=1

- JSON output unless ``log_format`` (or ``debug``) asks for the console renderer
- request_id / user_id from context vars are attached to every line
- Long string fields (prompts, upstream error bodies) are clipped
- stdlib loggers (uvicorn, httpx, redis) go through the same formatter
"""

from __future__ import annotations

import logging
import sys
from contextvars import ContextVar
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from app.config import Settings

# ── Context variables (bound per-request) ────────────────────────────

request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)
user_id_var: ContextVar[str | None] = ContextVar("user_id", default=None)

_CONTEXT_VARS: tuple[tuple[ContextVar[str | None], str], ...] = (
    (request_id_var, "request_id"),
    (user_id_var, "user_id"),
)

MAX_FIELD_CHARS = 500

_NOISY_LOGGERS = ("httpx", "httpcore", "uvicorn.access", "redis")


def _inject_context_vars(
    logger: logging.Logger,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    for var, key in _CONTEXT_VARS:
        val = var.get(None)
        if val is not None:
            event_dict.setdefault(key, val)
    return event_dict


def _clip_long_strings(
    logger: logging.Logger,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Cap string fields at MAX_FIELD_CHARS; tracebacks are left whole."""
    for key, val in event_dict.items():
        if key in ("event", "exception", "stack"):
            continue
        if isinstance(val, str) and len(val) > MAX_FIELD_CHARS:
            event_dict[key] = val[:MAX_FIELD_CHARS] + f"...[{len(val) - MAX_FIELD_CHARS} more]"
    return event_dict


def _use_console(settings: Settings) -> bool:
    fmt = settings.log_format.lower()
    if fmt == "auto":
        return settings.debug
    return fmt == "console"


def setup_logging(settings: Settings | None = None) -> None:
    """Configure structlog + stdlib logging. Safe to call more than once."""
    if settings is None:
        from app.config import get_settings

        settings = get_settings()

    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)
    console = _use_console(settings)

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        _inject_context_vars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        _clip_long_strings,
        structlog.processors.UnicodeDecoder(),
    ]

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    final_processors: list[structlog.types.Processor] = [
        structlog.stdlib.ProcessorFormatter.remove_processors_meta,
    ]
    if console:
        final_processors.append(structlog.dev.ConsoleRenderer())
    else:
        final_processors += [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=final_processors,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level)

    for noisy in _NOISY_LOGGERS:
        logging.getLogger(noisy).setLevel(max(log_level, logging.WARNING))


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structlog logger instance."""
    return structlog.get_logger(name)
