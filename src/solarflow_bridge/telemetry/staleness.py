"""Online/offline classification from message timestamp age."""

from __future__ import annotations

from solarflow_bridge.telemetry.converters import CONNECTED, DISCONNECTED

DEFAULT_OFFLINE_THRESHOLD_SECONDS = 300


def classify_connection(
    last_timestamp_s: float,
    now_s: float,
    threshold_s: float | None = DEFAULT_OFFLINE_THRESHOLD_SECONDS,
) -> str:
    """Return "Connected" unless the message is older than the threshold.

    A threshold of None or 0 falls back to the 300s default.
    """
    threshold = threshold_s or DEFAULT_OFFLINE_THRESHOLD_SECONDS
    if now_s - last_timestamp_s > threshold:
        return DISCONNECTED
    return CONNECTED
