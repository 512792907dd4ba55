"""Structured diagnostic records for dropped messages, rejected commands and unknown properties."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable

logger = logging.getLogger(__name__)

UNKNOWN_PROPERTY = "unknown_property"
UNKNOWN_PACK_PROPERTY = "unknown_pack_property"
PARSE_ERROR = "parse_error"
ROUTING_ERROR = "routing_error"
COMMAND_REJECTED = "command_rejected"


@dataclass
class Diagnostic:
    """One observability record. Never raised, only emitted."""

    level: int
    message: str
    category: str
    device_id: str | None = None
    context: dict[str, Any] = field(default_factory=dict)


DiagnosticSink = Callable[[Diagnostic], None]


def log_diagnostic(diagnostic: Diagnostic) -> None:
    """Default sink: forward the record to the standard logger."""
    logger.log(
        diagnostic.level,
        diagnostic.message,
        extra={
            "category": diagnostic.category,
            "device_id": diagnostic.device_id,
            "context": diagnostic.context,
        },
    )
