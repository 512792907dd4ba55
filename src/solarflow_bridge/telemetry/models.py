"""Canonical telemetry update records."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from solarflow_bridge.devices.family import DeviceId
from solarflow_bridge.diagnostics import Diagnostic
from solarflow_bridge.hooks import HookInvocation


@dataclass(frozen=True)
class CanonicalUpdate:
    """One (device, field, value) write to canonical state."""

    device_id: DeviceId
    field: str
    value: Any


@dataclass(frozen=True)
class ControlMirrorUpdate:
    """Device-confirmed setpoint written to the control namespace."""

    device_id: DeviceId
    field: str
    value: Any


@dataclass
class NormalizationResult:
    updates: list[CanonicalUpdate] = field(default_factory=list)
    mirror: list[ControlMirrorUpdate] = field(default_factory=list)
    hooks: list[HookInvocation] = field(default_factory=list)
    diagnostics: list[Diagnostic] = field(default_factory=list)

    def values(self) -> dict[str, Any]:
        """Final canonical value per field after last-write-wins."""
        return {u.field: u.value for u in self.updates}

    def mirror_values(self) -> dict[str, Any]:
        return {m.field: m.value for m in self.mirror}


@dataclass
class PackRecord:
    """Canonical fields for one battery pack."""

    serial: str
    pack_type: str
    soc_percent: float | None = None
    max_temp_c: float | None = None
    min_volt_v: float | None = None
    max_volt_v: float | None = None
    total_volt_v: float | None = None
    current_a: float | None = None
    state_of_health_percent: float | None = None

    def state_fields(self) -> dict[str, Any]:
        """Present fields keyed by their stored names."""
        fields: dict[str, Any] = {"model": self.pack_type, "sn": self.serial}
        optional = {
            "socLevel": self.soc_percent,
            "maxTemp": self.max_temp_c,
            "minVol": self.min_volt_v,
            "maxVol": self.max_volt_v,
            "totalVol": self.total_volt_v,
            "batcur": self.current_a,
            "soh": self.state_of_health_percent,
        }
        fields.update({k: v for k, v in optional.items() if v is not None})
        return fields


@dataclass(frozen=True)
class PackUpdate:
    device_id: DeviceId
    record: PackRecord
    is_new: bool = False


@dataclass
class PackBatch:
    updates: list[PackUpdate] = field(default_factory=list)
    hooks: list[HookInvocation] = field(default_factory=list)
    diagnostics: list[Diagnostic] = field(default_factory=list)
