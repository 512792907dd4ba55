"""Command clampers: validate and quantize requested setpoints per device family.

Each clamper is pure. A rejected request raises ValidationError. A clamper
that compares against the current canonical value returns None when the
clamped result would not change anything; an unknown current value never
suppresses.
"""

from __future__ import annotations

import math
from typing import Any

from solarflow_bridge.config.schema import LimitsConfig
from solarflow_bridge.devices.family import DeviceFamily
from solarflow_bridge.errors import ValidationError

CHARGE_LIMIT_RANGE = (40, 100)
DISCHARGE_LIMIT_RANGE = (0, 50)
HUB_STATES = frozenset({0, 1})
AC_MODES = frozenset({0, 1, 2})

# SOC setpoints travel in tenths of a percent.
SOC_SCALE = 10

SMART_MATCHING_MODE = 8
SMART_CT_MODE = 9

_FINE_GRAINED_FAMILIES = frozenset({DeviceFamily.HYPER, DeviceFamily.ACE})


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _numeric(prop: str, value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(prop, value, "not a number")
    if math.isnan(value):
        raise ValidationError(prop, value, "not a number")
    return value


def _as_float(value: Any) -> float | None:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _unchanged(current: Any, value: int) -> bool:
    return current is not None and _as_float(current) == value


def input_limit_ceiling(family: DeviceFamily, limits: LimitsConfig) -> int:
    if family == DeviceFamily.HYPER:
        return limits.input_limit_max_hyper
    if family == DeviceFamily.ACE:
        return limits.input_limit_max_ace
    return limits.input_limit_max_default


def clamp_input_limit(
    requested: float | None,
    current: Any,
    family: DeviceFamily,
    limits: LimitsConfig | None = None,
) -> int | None:
    """Clamp an AC input (charge) limit in watts.

    ACE units take 100W steps, rounded up. Other non-Hyper families cannot
    hold a small non-zero setpoint, so it is raised to the floor.
    """
    limits = limits or LimitsConfig()
    limit = 0 if requested is None else round_half_up(_numeric("inputLimit", requested))

    if family == DeviceFamily.ACE:
        step = limits.ace_input_limit_step
        limit = math.ceil(limit / step) * step

    ceiling = input_limit_ceiling(family, limits)
    if limit < 0:
        limit = 0
    elif 0 < limit < limits.input_limit_min and family not in _FINE_GRAINED_FAMILIES:
        limit = limits.input_limit_min
    elif limit > ceiling:
        limit = ceiling

    if _unchanged(current, limit):
        return None
    return limit


def snap_output_limit(limit: int, family: DeviceFamily, limits: LimitsConfig) -> int:
    """Snap small output limits onto the hub's discrete steps.

    Hubs only accept 0/30/60/90 below 100W: a value between two steps falls
    to the lower one, and anything under the smallest non-zero step rises to it.
    """
    if family in _FINE_GRAINED_FAMILIES:
        return limit
    if limit <= 0 or limit >= limits.output_limit_snap_below or limit in limits.output_limit_steps:
        return limit

    positive = sorted(s for s in limits.output_limit_steps if s > 0)
    if not positive:
        return limit
    lower = [s for s in positive if s < limit]
    return lower[-1] if lower else positive[0]


def clamp_output_limit(
    requested: float | None,
    current: Any,
    family: DeviceFamily,
    *,
    auto_model: Any,
    blocked: bool = False,
    limits: LimitsConfig | None = None,
) -> int | None:
    """Clamp an output (feed-in) limit in watts.

    Only allowed while the operation mode (autoModel) is 0. ``blocked``
    forces the limit to 0 (low-voltage block or pending full charge).
    """
    limits = limits or LimitsConfig()
    if auto_model is None or _as_float(auto_model) != 0:
        raise ValidationError(
            "outputLimit", requested, "operation mode (autoModel) is not set to 0"
        )

    limit = 0 if requested is None else round_half_up(_numeric("outputLimit", requested))
    if blocked:
        limit = 0

    limit = max(limit, 0)
    limit = snap_output_limit(limit, family, limits)
    limit = min(limit, limits.output_limit_max)

    if _unchanged(current, limit):
        return None
    return limit


def _scaled_soc(prop: str, value: Any, bounds: tuple[int, int]) -> int:
    value = _numeric(prop, value)
    low, high = bounds
    if not low <= value <= high:
        raise ValidationError(prop, value, f"not in range {low}-{high}")
    return round_half_up(value * SOC_SCALE)


def validate_charge_limit(soc_set: Any) -> int:
    """Charge limit (%) → socSet in tenths of a percent."""
    return _scaled_soc("socSet", soc_set, CHARGE_LIMIT_RANGE)


def validate_discharge_limit(min_soc: Any) -> int:
    """Discharge limit (%) → minSoc in tenths of a percent."""
    return _scaled_soc("minSoc", min_soc, DISCHARGE_LIMIT_RANGE)


def validate_hub_state(hub_state: Any) -> int:
    if isinstance(hub_state, bool) or _as_float(hub_state) not in HUB_STATES:
        raise ValidationError("hubState", hub_state, "must be 0 or 1")
    return int(_as_float(hub_state))  # type: ignore[arg-type]


def validate_ac_mode(ac_mode: Any) -> int:
    if isinstance(ac_mode, bool) or _as_float(ac_mode) not in AC_MODES:
        raise ValidationError("acMode", ac_mode, "must be 0, 1 or 2")
    return int(_as_float(ac_mode))  # type: ignore[arg-type]


def switch_value(on: bool) -> int:
    return 1 if on else 0


def auto_model_properties(auto_model: int) -> dict[str, Any]:
    """Property-write body for an operation mode change."""
    if auto_model == SMART_MATCHING_MODE:
        return {
            "autoModelProgram": 1,
            "autoModelValue": {"chargingType": 0, "chargingPower": 0, "outPower": 0},
            "msgType": 1,
            "autoModel": SMART_MATCHING_MODE,
        }
    if auto_model == SMART_CT_MODE:
        return {
            "autoModelProgram": 2,
            "autoModelValue": {"chargingType": 3, "chargingPower": 0, "outPower": 0},
            "msgType": 1,
            "autoModel": SMART_CT_MODE,
        }
    return {"autoModel": auto_model}
