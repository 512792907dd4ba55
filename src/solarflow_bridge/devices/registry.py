"""Registry of configured devices and their sub-devices."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from solarflow_bridge.config.schema import DeviceConfig
from solarflow_bridge.devices.family import DeviceId

logger = logging.getLogger(__name__)

# Product name of the AC unit that may sit behind a hub.
ACE_SUB_DEVICE_NAME = "ace 1500"


@dataclass
class DeviceDetails:
    """One physical unit known to the bridge."""

    product_key: str
    device_key: str
    product_name: str = ""
    sub_devices: list[DeviceDetails] = field(default_factory=list)

    @property
    def device_id(self) -> DeviceId:
        return DeviceId(self.product_key, self.device_key)

    @property
    def connected_with_ace(self) -> bool:
        """True when an ACE unit is attached downstream of this device."""
        return any(
            sub.product_name.lower() == ACE_SUB_DEVICE_NAME for sub in self.sub_devices
        )

    @property
    def ace_sub_devices(self) -> list[DeviceDetails]:
        return [
            sub for sub in self.sub_devices
            if sub.product_name.lower() == ACE_SUB_DEVICE_NAME
        ]


class DeviceRegistry:
    """Keeps the device list and answers per-device lookups."""

    def __init__(self, devices: list[DeviceDetails] | None = None) -> None:
        self._devices: dict[DeviceId, DeviceDetails] = {}
        for device in devices or []:
            self.add(device)

    @classmethod
    def from_config(cls, devices: list[DeviceConfig]) -> DeviceRegistry:
        details = [
            DeviceDetails(
                product_key=d.product_key,
                device_key=d.device_key,
                product_name=d.product_name,
                sub_devices=[
                    DeviceDetails(s.product_key, s.device_key, s.product_name)
                    for s in d.sub_devices
                ],
            )
            for d in devices
        ]
        return cls(details)

    def add(self, device: DeviceDetails) -> None:
        self._devices[device.device_id] = device
        for sub in device.sub_devices:
            self._devices.setdefault(sub.device_id, sub)
        logger.debug(
            "Registered device %s (%s, %d sub-device(s))",
            device.device_id, device.product_name or "unnamed", len(device.sub_devices),
        )

    def get(self, device_id: DeviceId) -> DeviceDetails | None:
        return self._devices.get(device_id)

    def top_level(self) -> list[DeviceDetails]:
        """Devices that are not themselves attached to another device."""
        subs = {sub.device_id for d in self._devices.values() for sub in d.sub_devices}
        return [d for d in self._devices.values() if d.device_id not in subs]

    def product_name(self, device_id: DeviceId) -> str | None:
        device = self._devices.get(device_id)
        return device.product_name if device and device.product_name else None

    def is_connected_with_ace(self, device_id: DeviceId) -> bool:
        device = self._devices.get(device_id)
        return bool(device and device.connected_with_ace)

    def __len__(self) -> int:
        return len(self._devices)
