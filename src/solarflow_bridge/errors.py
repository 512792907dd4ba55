"""Error taxonomy for telemetry ingestion and command validation.

None of these are fatal to the process: a ParseError or RoutingError drops
one inbound message, a ValidationError drops one outbound command.
"""

from __future__ import annotations


class SolarflowError(Exception):
    """Base exception for the bridge."""


class ParseError(SolarflowError):
    """Inbound payload could not be decoded or converted."""


class RoutingError(SolarflowError):
    """Device identity could not be resolved from the topic."""

    def __init__(self, topic: str) -> None:
        super().__init__(f"Could not parse productKey or deviceKey from topic: {topic}")
        self.topic = topic


class ValidationError(SolarflowError):
    """Command value is outside the allowed range or state."""

    def __init__(self, prop: str, value: object, reason: str) -> None:
        super().__init__(f"{prop}={value!r} rejected: {reason}")
        self.prop = prop
        self.value = value
        self.reason = reason
