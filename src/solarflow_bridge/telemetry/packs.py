"""Battery pack telemetry normalizer and pack registry."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from typing import Any

from solarflow_bridge.devices.family import AIO_PRODUCT_KEY, DeviceId
from solarflow_bridge.diagnostics import UNKNOWN_PACK_PROPERTY, Diagnostic
from solarflow_bridge.errors import ParseError
from solarflow_bridge.hooks import HookInvocation, HookName
from solarflow_bridge.telemetry import converters
from solarflow_bridge.telemetry.models import PackBatch, PackRecord, PackUpdate

logger = logging.getLogger(__name__)

KNOWN_PACK_PROPERTIES = frozenset({
    "sn", "totalVol", "maxVol", "minVol", "socLevel", "maxTemp", "soh",
})


def derive_pack_type(serial: str, product_key: str) -> str:
    """Battery model from the serial number pattern ("" when unrecognised)."""
    if product_key == AIO_PRODUCT_KEY:
        return "AIO2400"
    if serial.startswith("C"):
        return "AB2000S" if serial[3:4] == "F" else "AB2000"
    if serial.startswith("A"):
        return "AB1000"
    return ""


class PackRegistry:
    """Which packs are attached to which device.

    A (serial, device_key) pair is registered once; its pack type is fixed
    at registration.
    """

    def __init__(self) -> None:
        self._packs: dict[tuple[str, str], str] = {}

    def register(self, serial: str, device_key: str, pack_type: str) -> bool:
        """Register a pack. Returns True only on first sight of the pair."""
        key = (serial, device_key)
        if key in self._packs:
            return False
        self._packs[key] = pack_type
        logger.debug("Added battery %s with SN %s on deviceKey %s", pack_type, serial, device_key)
        return True

    def pack_type(self, serial: str, device_key: str) -> str | None:
        return self._packs.get((serial, device_key))

    def packs_for(self, device_key: str) -> dict[str, str]:
        """Serial → pack type for every pack on a device."""
        return {sn: t for (sn, dk), t in self._packs.items() if dk == device_key}

    def __len__(self) -> int:
        return len(self._packs)


def _optional(record: dict[str, Any], key: str, convert: Callable[[Any], float]) -> float | None:
    value = record.get(key)
    if value is None:
        return None
    try:
        return convert(value)
    except ParseError as e:
        raise ParseError(f"Pack {record.get('sn')!r} field {key!r}: {e}") from e


def normalize_packs(
    device_id: DeviceId,
    product_key: str,
    records: Iterable[Any],
    is_solarflow_like: bool,
    registry: PackRegistry,
) -> PackBatch:
    """Convert raw ``packData`` entries into pack records.

    Records without a serial are skipped. Unknown fields are reported as
    diagnostics. When any pack reports ``totalVol`` on a solar-capable
    device, one voltage-supervision hook carries the lowest pack voltage.
    """
    if isinstance(records, (str, bytes)) or not isinstance(records, Iterable):
        raise ParseError(f"'packData' must be a list, got {type(records).__name__}")

    batch = PackBatch()
    voltages: list[float] = []
    pending: list[tuple[PackRecord, bool]] = []

    for raw in records:
        if not isinstance(raw, dict):
            raise ParseError(f"packData entry must be an object, got {type(raw).__name__}")
        serial = raw.get("sn")
        if not serial:
            continue
        serial = str(serial)

        pack_type = registry.pack_type(serial, device_id.device_key)
        is_new = pack_type is None
        if pack_type is None:
            pack_type = derive_pack_type(serial, product_key)

        record = PackRecord(
            serial=serial,
            pack_type=pack_type,
            soc_percent=_optional(raw, "socLevel", converters.as_number),
            max_temp_c=_optional(raw, "maxTemp", converters.deci_kelvin_to_celsius),
            min_volt_v=_optional(raw, "minVol", converters.hundredths),
            max_volt_v=_optional(raw, "maxVol", converters.hundredths),
            total_volt_v=_optional(raw, "totalVol", converters.hundredths),
            current_a=_optional(raw, "batcur", converters.tenths),
            state_of_health_percent=_optional(raw, "soh", converters.tenths),
        )
        pending.append((record, is_new))
        if record.total_volt_v is not None:
            voltages.append(record.total_volt_v)

        for key, value in raw.items():
            if key not in KNOWN_PACK_PROPERTIES:
                batch.diagnostics.append(Diagnostic(
                    level=logging.DEBUG,
                    message=f"SN {serial}: unknown packData property {key!r} with value {value!r}",
                    category=UNKNOWN_PACK_PROPERTY,
                    device_id=str(device_id),
                    context={"serial": serial, "key": key, "value": value},
                ))

    # Register only after every record converted, so a bad record leaves no trace.
    for record, is_new in pending:
        if is_new:
            is_new = registry.register(record.serial, device_id.device_key, record.pack_type)
        batch.updates.append(PackUpdate(device_id, record, is_new))

    if voltages and is_solarflow_like:
        batch.hooks.append(
            HookInvocation(HookName.VOLTAGE_SUPERVISION, device_id, (min(voltages),))
        )

    return batch
