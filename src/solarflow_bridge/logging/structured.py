"""Structured logging setup using structlog."""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog

CONTEXT_PREFIX = "ctx_"

# Chatty third-party loggers and the level they are capped at.
_QUIET_LOGGERS = {"aiomqtt": logging.WARNING, "asyncio": logging.WARNING}


def flatten_diagnostic_context(
    logger: Any, method_name: str, event_dict: structlog.types.EventDict,
) -> structlog.types.EventDict:
    """Lift a diagnostic's ``context`` mapping into top-level ``ctx_*`` keys.

    Keys already present on the event are never overwritten.
    """
    context = event_dict.pop("context", None)
    if isinstance(context, dict):
        for key, value in context.items():
            event_dict.setdefault(f"{CONTEXT_PREFIX}{key}", value)
    elif context is not None:
        event_dict["context"] = context
    return event_dict


def _render_chain(fmt: str) -> list[structlog.types.Processor]:
    if fmt == "console":
        return [structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())]
    return [
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer(default=str),
    ]


def setup_logging(level: str = "INFO", fmt: str = "json", log_file: str = "") -> None:
    """Configure structured logging for the bridge.

    Every module logs through stdlib ``logging``; records are rendered by
    structlog's ProcessorFormatter so bound context (the device being
    routed) and diagnostic fields passed as ``extra`` appear on each line.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        fmt: "json" for one JSON object per line, "console" for development.
        log_file: Optional file path for log output. Empty = stdout only.
    """
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.ExtraAdder(),
        flatten_diagnostic_context,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    structlog.configure(
        processors=[*shared_processors, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, *_render_chain(fmt)],
    )

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    for handler in handlers:
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for name, cap in _QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(cap)
