"""MQTT topic builders and parsing."""

from __future__ import annotations

from solarflow_bridge.devices.family import DeviceId
from solarflow_bridge.errors import RoutingError

APP_TOPIC_PREFIX = "/server/app"
FORCED_LOGOUT_MARKER = "loginout/force"


def write_topic(device_id: DeviceId) -> str:
    """Topic for property-write commands."""
    return f"iot/{device_id.product_key}/{device_id.device_key}/properties/write"


def read_topic(device_id: DeviceId) -> str:
    """Topic for property-read requests."""
    return f"iot/{device_id.product_key}/{device_id.device_key}/properties/read"


def report_topic(device_id: DeviceId) -> str:
    """Subscription for device reports."""
    return f"/{device_id.product_key}/{device_id.device_key}/#"


def iot_topic(device_id: DeviceId) -> str:
    """Subscription for the device's iot channel."""
    return f"iot/{device_id.product_key}/{device_id.device_key}/#"


def parse_device_topic(topic: str) -> DeviceId:
    """Extract (productKey, deviceKey) from segments 1 and 2 of a topic.

    Works for ``/pk/dk/...``, ``iot/pk/dk/...`` and ``/server/app/pk/dk/...``.

    Raises:
        RoutingError: Either segment is missing or empty.
    """
    segments = topic.replace(APP_TOPIC_PREFIX, "").split("/")
    if len(segments) < 3 or not segments[1] or not segments[2]:
        raise RoutingError(topic)
    return DeviceId(segments[1], segments[2])


def is_forced_logout(topic: str) -> bool:
    return FORCED_LOGOUT_MARKER in topic.lower()
