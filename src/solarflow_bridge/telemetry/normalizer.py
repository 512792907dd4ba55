"""Property normalizer: vendor MQTT properties → canonical device state.

Each known property key maps to one handler. Handlers run independently in
registry order and only see absent/None keys as "not present". They share a
batch view so coupled rules (pack power mutual exclusion, standby usage,
minSoc comparison) read values produced earlier in the same pass before
falling back to the caller's snapshot of canonical state.

The normalizer performs no I/O. It returns updates, control-mirror updates,
hook invocations and diagnostics for the caller to apply.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Callable

from solarflow_bridge.config.schema import TelemetryConfig
from solarflow_bridge.devices.family import DeviceId, is_solarflow_like, mirrors_input_limit
from solarflow_bridge.diagnostics import UNKNOWN_PROPERTY, Diagnostic
from solarflow_bridge.errors import ParseError
from solarflow_bridge.hooks import HookInvocation, HookName
from solarflow_bridge.telemetry import converters
from solarflow_bridge.telemetry.models import CanonicalUpdate, ControlMirrorUpdate, NormalizationResult

logger = logging.getLogger(__name__)

# Self-consumption (W) of a hub when solar input is minimal, and of an attached ACE.
STANDBY_USAGE_W = 7
LOW_SOLAR_INPUT_W = 10
FULL_CHARGE_LEVEL = 100


class _Pass:
    """Mutable state of one normalization pass over a single message."""

    def __init__(
        self,
        device_id: DeviceId,
        product_name: str | None,
        current: Mapping[str, Any],
        control: Mapping[str, Any],
        solarflow_like: bool,
        connected_with_ace: bool,
        use_calculation: bool,
    ) -> None:
        self.device_id = device_id
        self.product_name = product_name
        self.solarflow_like = solarflow_like
        self.connected_with_ace = connected_with_ace
        self.use_calculation = use_calculation
        self.control = control
        self.result = NormalizationResult()
        self._current = current
        self._batch: dict[str, Any] = {}

    def get(self, field: str) -> Any:
        if field in self._batch:
            return self._batch[field]
        return self._current.get(field)

    def set(self, field: str, value: Any) -> None:
        self._batch[field] = value
        self.result.updates.append(CanonicalUpdate(self.device_id, field, value))

    def mirror(self, field: str, value: Any) -> None:
        self.result.mirror.append(ControlMirrorUpdate(self.device_id, field, value))

    def hook(self, name: HookName) -> None:
        if any(h.name == name for h in self.result.hooks):
            return
        self.result.hooks.append(HookInvocation(name, self.device_id))


Handler = Callable[[_Pass, Any], None]


def _direct(target: str, convert: Callable[[Any], Any] | None = None, mirror: str | None = None) -> Handler:
    """Write the (optionally converted) value to ``target``, and to ``mirror`` in control."""

    def handler(p: _Pass, raw: Any) -> None:
        value = convert(raw) if convert else raw
        p.set(target, value)
        if mirror:
            p.mirror(mirror, value)

    return handler


def _pass_mode(p: _Pass, raw: Any) -> None:
    p.set("passMode", converters.pass_mode_label(raw))
    # The control select works on the raw code, not the label.
    p.mirror("passMode", raw)


def _input_limit(p: _Pass, raw: Any) -> None:
    p.set("inputLimit", raw)
    if mirrors_input_limit(p.product_name):
        p.mirror("setInputLimit", raw)


def _output_pack_power(p: _Pass, raw: Any) -> None:
    p.set("outputPackPower", raw)
    p.set("packInputPower", 0)


def _pack_input_power(p: _Pass, raw: Any) -> None:
    standby = 0
    solar_input = p.get("solarInputPower")
    if solar_input is not None:
        solar_input = converters.as_number(solar_input)
        if solar_input < LOW_SOLAR_INPUT_W:
            standby = STANDBY_USAGE_W - solar_input
    if p.connected_with_ace:
        standby += STANDBY_USAGE_W

    p.set("packInputPower", converters.as_number(raw) + standby)
    p.set("outputPackPower", 0)


def _electric_level(p: _Pass, raw: Any) -> None:
    level = converters.as_number(raw)
    p.set("electricLevel", raw)
    if not p.solarflow_like:
        return

    if level == FULL_CHARGE_LEVEL:
        if p.use_calculation:
            p.hook(HookName.ENERGY_MAX_CAPTURE)
        if p.control.get("fullChargeNeeded") is True:
            p.mirror("fullChargeNeeded", False)

    min_soc = p.get("minSoc")
    if p.use_calculation and min_soc is not None and level == converters.as_number(min_soc):
        p.hook(HookName.RESET_SOC_TO_ZERO)


# Order matters only for coupled rules: solarInputPower before packInputPower,
# minSoc before electricLevel.
_RULES: tuple[tuple[str, Handler], ...] = (
    ("autoModel", _direct("autoModel", mirror="autoModel")),
    ("heatState", _direct("heatState", converters.to_bool)),
    ("minSoc", _direct("minSoc", converters.tenths, mirror="dischargeLimit")),
    ("socSet", _direct("socSet", converters.tenths, mirror="chargeLimit")),
    ("electricLevel", _electric_level),
    ("power", _direct("power", converters.tenths)),
    ("packState", _direct("packState", converters.pack_state_label)),
    ("passMode", _pass_mode),
    ("pass", _direct("pass", converters.to_bool)),
    ("autoRecover", _direct("autoRecover", converters.to_bool, mirror="autoRecover")),
    ("outputHomePower", _direct("outputHomePower")),
    ("energyPower", _direct("energyPower")),
    ("outputLimit", _direct("outputLimit", mirror="setOutputLimit")),
    ("buzzerSwitch", _direct("buzzerSwitch", converters.to_bool, mirror="buzzerSwitch")),
    ("solarInputPower", _direct("solarInputPower")),
    ("outputPackPower", _output_pack_power),
    ("packInputPower", _pack_input_power),
    # Vendor firmware reports PV channels swapped in pairs.
    ("pvPower1", _direct("pvPower2")),
    ("pvPower2", _direct("pvPower1")),
    ("pvPower3", _direct("pvPower4")),
    ("pvPower4", _direct("pvPower3")),
    ("solarPower1", _direct("pvPower1")),
    ("solarPower2", _direct("pvPower2")),
    ("solarPower3", _direct("pvPower3")),
    ("solarPower4", _direct("pvPower4")),
    ("remainOutTime", _direct("remainOutTime")),
    ("remainInputTime", _direct("remainInputTime")),
    ("inputLimit", _input_limit),
    ("gridInputPower", _direct("gridInputPower")),
    ("acMode", _direct("acMode", mirror="acMode")),
    ("hyperTmp", _direct("hyperTmp", converters.deci_kelvin_to_celsius)),
    ("acOutputPower", _direct("acOutputPower")),
    ("gridPower", _direct("gridInputPower")),
    ("acSwitch", _direct("acSwitch", converters.to_bool, mirror="acSwitch")),
    ("dcSwitch", _direct("dcSwitch", converters.to_bool, mirror="dcSwitch")),
    ("dcOutputPower", _direct("dcOutputPower")),
    ("pvBrand", _direct("pvBrand", converters.pv_brand_label)),
    ("inverseMaxPower", _direct("inverseMaxPower")),
    ("wifiState", _direct("wifiState", converters.wifi_state_label)),
    ("packNum", _direct("packNum")),
    ("hubState", _direct("hubState", mirror="hubState")),
)

KNOWN_PROPERTIES: frozenset[str] = frozenset(key for key, _ in _RULES)


class PropertyNormalizer:
    """Applies the per-property rules to one decoded ``properties`` object."""

    def __init__(self, config: TelemetryConfig | None = None) -> None:
        self._config = config or TelemetryConfig()
        self._rules = _RULES

    def normalize(
        self,
        device_id: DeviceId,
        product_name: str | None,
        properties: Mapping[str, Any],
        current: Mapping[str, Any] | None = None,
        control: Mapping[str, Any] | None = None,
        *,
        solarflow_like: bool | None = None,
        connected_with_ace: bool = False,
    ) -> NormalizationResult:
        """Normalize one message's properties.

        Args:
            device_id: Device the message belongs to.
            product_name: Free-text product name (may be None).
            properties: Decoded ``properties`` object from the payload.
            current: Snapshot of the device's canonical state.
            control: Snapshot of the device's control namespace.
            solarflow_like: Override for the solar-capable flag; derived
                from the product key and product name when omitted.
            connected_with_ace: Device sits downstream of an ACE unit.

        Raises:
            ParseError: The object is not a mapping or a value cannot be
                converted. Nothing from the message should be applied.
        """
        if not isinstance(properties, Mapping):
            raise ParseError(f"'properties' must be an object, got {type(properties).__name__}")

        if solarflow_like is None:
            solarflow_like = is_solarflow_like(device_id.product_key, product_name)

        p = _Pass(
            device_id,
            product_name,
            current or {},
            control or {},
            solarflow_like=solarflow_like,
            connected_with_ace=connected_with_ace,
            use_calculation=self._config.use_calculation,
        )

        for key, handler in self._rules:
            raw = properties.get(key)
            if raw is None:
                continue
            try:
                handler(p, raw)
            except ParseError as e:
                raise ParseError(f"Property {key!r} of {device_id}: {e}") from e

        for key, value in properties.items():
            if key not in KNOWN_PROPERTIES:
                p.result.diagnostics.append(Diagnostic(
                    level=logging.DEBUG,
                    message=f"Unknown MQTT property {key!r} with value {value!r}",
                    category=UNKNOWN_PROPERTY,
                    device_id=str(device_id),
                    context={"key": key, "value": value, "product_name": product_name},
                ))

        return p.result
