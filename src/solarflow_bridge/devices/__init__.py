"""Device identity, family classification, and registry."""

from solarflow_bridge.devices.family import DeviceFamily, DeviceId, classify_family, is_solarflow_like
from solarflow_bridge.devices.registry import DeviceDetails, DeviceRegistry

__all__ = [
    "DeviceDetails",
    "DeviceFamily",
    "DeviceId",
    "DeviceRegistry",
    "classify_family",
    "is_solarflow_like",
]
