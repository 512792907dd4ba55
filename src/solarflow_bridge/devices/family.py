"""Device identity and family classification.

Vendor product names are free text ("solarflow 800 pro", "hyper 2000",
"ace 1500"). All name heuristics live here: calibration constants are looked
up by DeviceFamily, while the solar-capable and input-limit gates match
keywords directly.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

ACE_PRODUCT_KEY = "8bM93H"
AIO_PRODUCT_KEY = "yWF7hV"
SMART_PLUG_PRODUCT_KEY = "s3Xk4x"


@dataclass(frozen=True)
class DeviceId:
    """Composite identity of one physical unit, assigned by the MQTT topic."""

    product_key: str
    device_key: str

    def __str__(self) -> str:
        return f"{self.product_key}.{self.device_key}"


class DeviceFamily(str, Enum):
    SOLARFLOW_HUB = "solarflow"
    HYPER = "hyper"
    ACE = "ace"
    AIO = "aio"
    SMART_PLUG = "smartPlug"
    UNKNOWN = "unknown"


# Checked in order; "solarflow hyper" must classify as HYPER.
_NAME_PATTERNS: tuple[tuple[str, DeviceFamily], ...] = (
    ("hyper", DeviceFamily.HYPER),
    ("ace", DeviceFamily.ACE),
    ("aio", DeviceFamily.AIO),
    ("smart plug", DeviceFamily.SMART_PLUG),
    ("solarflow", DeviceFamily.SOLARFLOW_HUB),
)

# Name rules below match every keyword, not just the classified family:
# "solarflow ace 1500" is both solar-capable and an input-limit device.
_SOLARFLOW_LIKE_NAMES = ("solarflow", "hyper", "aio")
_INPUT_LIMIT_MIRROR_NAMES = ("solarflow", "ace", "hyper")


def classify_family(product_name: str | None) -> DeviceFamily:
    """Classify a device by its product name. Absent names are UNKNOWN."""
    if not product_name:
        return DeviceFamily.UNKNOWN
    name = product_name.lower()
    for pattern, family in _NAME_PATTERNS:
        if pattern in name:
            return family
    return DeviceFamily.UNKNOWN


def _name_contains(product_name: str | None, keywords: tuple[str, ...]) -> bool:
    name = (product_name or "").lower()
    return any(keyword in name for keyword in keywords)


def is_solarflow_like(product_key: str, product_name: str | None) -> bool:
    """Whether solar/battery rules (voltage checks, SOC hooks) apply."""
    return product_key != ACE_PRODUCT_KEY or _name_contains(product_name, _SOLARFLOW_LIKE_NAMES)


def mirrors_input_limit(product_name: str | None) -> bool:
    """Whether a reported inputLimit should update the control setpoint."""
    return _name_contains(product_name, _INPUT_LIMIT_MIRROR_NAMES)
