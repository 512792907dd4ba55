"""Raw vendor codes → engineering units and categorical labels."""

from __future__ import annotations

from typing import Any

from solarflow_bridge.errors import ParseError

PACK_STATES = {0: "Idle", 1: "Charging", 2: "Discharging"}

PASS_MODES = {0: "Automatic", 1: "Always off", 2: "Always on"}

PV_BRANDS = {
    0: "Others",
    1: "Hoymiles",
    2: "Enphase",
    3: "APSystems",
    4: "Anker",
    5: "Deye",
    6: "Bosswerk",
}

UNKNOWN_LABEL = "Unknown"
CONNECTED = "Connected"
DISCONNECTED = "Disconnected"

KELVIN_OFFSET = 273.15


def as_number(value: Any) -> float | int:
    """Coerce a JSON value to a number, accepting numeric strings."""
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        try:
            number = float(value)
        except ValueError:
            raise ParseError(f"Expected a number, got {value!r}") from None
        return int(number) if number.is_integer() else number
    raise ParseError(f"Expected a number, got {type(value).__name__}")


def to_bool(value: Any) -> bool:
    return as_number(value) != 0


def tenths(value: Any) -> float:
    return as_number(value) / 10


def hundredths(value: Any) -> float:
    return as_number(value) / 100


def deci_kelvin_to_celsius(value: Any) -> float:
    """Vendor temperatures are reported in tenths of a Kelvin."""
    return as_number(value) / 10 - KELVIN_OFFSET


def _label(table: dict[int, str], value: Any) -> str:
    return table.get(as_number(value), UNKNOWN_LABEL)  # type: ignore[arg-type]


def pack_state_label(value: Any) -> str:
    return _label(PACK_STATES, value)


def pass_mode_label(value: Any) -> str:
    return _label(PASS_MODES, value)


def pv_brand_label(value: Any) -> str:
    return _label(PV_BRANDS, value)


def wifi_state_label(value: Any) -> str:
    return CONNECTED if as_number(value) == 1 else DISCONNECTED
