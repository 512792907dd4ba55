"""State store protocol and an in-memory implementation.

The bridge keeps two namespaces per device: canonical telemetry and the
control namespace (user setpoints, mirrored from device-confirmed values).
Both are last-write-wins per key.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from solarflow_bridge.devices.family import DeviceId


@runtime_checkable
class StateStore(Protocol):
    """Protocol for state backends to implement."""

    def get_value(self, device_id: DeviceId, field: str) -> Any:
        """Return the stored value, or None when unknown."""
        ...

    def set_value(self, device_id: DeviceId, field: str, value: Any) -> None:
        """Store a value, overwriting any previous one."""
        ...

    def snapshot(self, device_id: DeviceId) -> dict[str, Any]:
        """Copy of all fields currently stored for a device."""
        ...


class InMemoryStateStore:
    """Dict-backed StateStore."""

    def __init__(self, name: str = "state") -> None:
        self.name = name
        self._values: dict[DeviceId, dict[str, Any]] = {}

    def get_value(self, device_id: DeviceId, field: str) -> Any:
        return self._values.get(device_id, {}).get(field)

    def set_value(self, device_id: DeviceId, field: str, value: Any) -> None:
        self._values.setdefault(device_id, {})[field] = value

    def snapshot(self, device_id: DeviceId) -> dict[str, Any]:
        return dict(self._values.get(device_id, {}))
