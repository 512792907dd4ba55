"""Outbound command payload publisher."""

from __future__ import annotations

import json
import logging
from typing import Any, Callable, Coroutine

from solarflow_bridge.devices.family import DeviceId
from solarflow_bridge.mqtt.topics import read_topic, write_topic

logger = logging.getLogger(__name__)

# Type for async publish function: (topic, payload, retain) -> None
PublishFn = Callable[[str, str, bool], Coroutine[Any, Any, None]]


class CommandPublisher:
    """Publishes property-write and property-read requests to devices."""

    def __init__(self, publish_fn: PublishFn) -> None:
        self._publish = publish_fn

    async def write_properties(self, device_id: DeviceId, properties: dict[str, Any]) -> None:
        """Publish ``{"properties": {...}}`` to the device's write topic."""
        payload = json.dumps({"properties": properties})
        logger.debug("Writing properties to %s: %s", device_id, payload)
        await self._publish(write_topic(device_id), payload, False)

    async def request_full_telemetry(self, device_id: DeviceId) -> None:
        """Ask the device to report every property."""
        logger.debug("Triggering full telemetry update for %s", device_id)
        await self._publish(read_topic(device_id), json.dumps({"properties": ["getAll"]}), False)
