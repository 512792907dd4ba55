"""Device controller: turns control intents into property-write commands."""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import Any, Callable

from solarflow_bridge.config.schema import AppConfig
from solarflow_bridge.control.limits import (
    auto_model_properties,
    clamp_input_limit,
    clamp_output_limit,
    switch_value,
    validate_ac_mode,
    validate_charge_limit,
    validate_discharge_limit,
    validate_hub_state,
)
from solarflow_bridge.devices.family import DeviceFamily, DeviceId, classify_family
from solarflow_bridge.devices.registry import DeviceRegistry
from solarflow_bridge.diagnostics import COMMAND_REJECTED, Diagnostic, DiagnosticSink, log_diagnostic
from solarflow_bridge.errors import ValidationError
from solarflow_bridge.mqtt.publisher import CommandPublisher
from solarflow_bridge.state.store import StateStore

logger = logging.getLogger(__name__)


class DeviceController:
    """Validates, clamps and publishes commands for one broker session.

    The read-current / decide / publish sequence for a (device, property)
    pair runs under a per-key lock so concurrent requests cannot both act
    on the same stale value.
    """

    def __init__(
        self,
        state: StateStore,
        control: StateStore,
        publisher: CommandPublisher,
        devices: DeviceRegistry | None = None,
        config: AppConfig | None = None,
        diagnostics: DiagnosticSink = log_diagnostic,
    ) -> None:
        self._state = state
        self._control = control
        self._publisher = publisher
        self._devices = devices if devices is not None else DeviceRegistry()
        self._config = config if config is not None else AppConfig()
        self._diagnostics = diagnostics
        self._locks: defaultdict[tuple[DeviceId, str], asyncio.Lock] = defaultdict(asyncio.Lock)

    # ── Helpers ──────────────────────────────────────────────

    def _family(self, device_id: DeviceId) -> DeviceFamily:
        name = self._state.get_value(device_id, "productName") or self._devices.product_name(device_id)
        return classify_family(str(name) if name is not None else None)

    def _reject(self, device_id: DeviceId, error: ValidationError) -> None:
        self._diagnostics(Diagnostic(
            level=logging.WARNING,
            message=f"Command rejected for {device_id}: {error}",
            category=COMMAND_REJECTED,
            device_id=str(device_id),
            context={"property": error.prop, "value": error.value, "reason": error.reason},
        ))

    async def _write(self, device_id: DeviceId, properties: dict[str, Any]) -> dict[str, Any]:
        logger.info("Setting %s on %s", properties, device_id)
        await self._publisher.write_properties(device_id, properties)
        return properties

    async def _validated_write(
        self,
        device_id: DeviceId,
        prop: str,
        validate: Callable[[Any], int],
        value: Any,
    ) -> dict[str, Any] | None:
        try:
            raw = validate(value)
        except ValidationError as e:
            self._reject(device_id, e)
            return None
        return await self._write(device_id, {prop: raw})

    # ── Clamped limits ───────────────────────────────────────

    async def set_input_limit(self, device_id: DeviceId, limit: float | None) -> dict[str, Any] | None:
        async with self._locks[(device_id, "inputLimit")]:
            current = self._state.get_value(device_id, "inputLimit")
            try:
                value = clamp_input_limit(limit, current, self._family(device_id), self._config.limits)
            except ValidationError as e:
                self._reject(device_id, e)
                return None
            if value is None:
                logger.debug("Input limit for %s already %s, not publishing", device_id, current)
                return None
            return await self._write(device_id, {"inputLimit": value})

    async def set_output_limit(self, device_id: DeviceId, limit: float | None) -> dict[str, Any] | None:
        async with self._locks[(device_id, "outputLimit")]:
            blocked = False
            if self._config.control.use_low_voltage_block:
                blocked = (
                    self._control.get_value(device_id, "lowVoltageBlock") is True
                    or self._control.get_value(device_id, "fullChargeNeeded") is True
                )
                if blocked:
                    logger.info("Output limit for %s forced to 0 (low voltage block)", device_id)

            current = self._state.get_value(device_id, "outputLimit")
            try:
                value = clamp_output_limit(
                    limit,
                    current,
                    self._family(device_id),
                    auto_model=self._state.get_value(device_id, "autoModel"),
                    blocked=blocked,
                    limits=self._config.limits,
                )
            except ValidationError as e:
                self._reject(device_id, e)
                return None
            if value is None:
                logger.debug("Output limit for %s already %s, not publishing", device_id, current)
                return None
            return await self._write(device_id, {"outputLimit": value})

    # ── Range-validated settings ─────────────────────────────

    async def set_charge_limit(self, device_id: DeviceId, soc_set: float) -> dict[str, Any] | None:
        return await self._validated_write(device_id, "socSet", validate_charge_limit, soc_set)

    async def set_discharge_limit(self, device_id: DeviceId, min_soc: float) -> dict[str, Any] | None:
        return await self._validated_write(device_id, "minSoc", validate_discharge_limit, min_soc)

    async def set_hub_state(self, device_id: DeviceId, hub_state: int) -> dict[str, Any] | None:
        return await self._validated_write(device_id, "hubState", validate_hub_state, hub_state)

    async def set_ac_mode(self, device_id: DeviceId, ac_mode: int) -> dict[str, Any] | None:
        return await self._validated_write(device_id, "acMode", validate_ac_mode, ac_mode)

    # ── Unvalidated settings ─────────────────────────────────

    async def set_auto_model(self, device_id: DeviceId, auto_model: int) -> dict[str, Any]:
        return await self._write(device_id, auto_model_properties(auto_model))

    async def set_pass_mode(self, device_id: DeviceId, pass_mode: int) -> dict[str, Any]:
        return await self._write(device_id, {"passMode": pass_mode})

    async def set_buzzer_switch(self, device_id: DeviceId, on: bool) -> dict[str, Any]:
        return await self._write(device_id, {"buzzerSwitch": switch_value(on)})

    async def set_auto_recover(self, device_id: DeviceId, on: bool) -> dict[str, Any]:
        return await self._write(device_id, {"autoRecover": switch_value(on)})

    async def set_dc_switch(self, device_id: DeviceId, on: bool) -> dict[str, Any]:
        return await self._write(device_id, {"dcSwitch": switch_value(on)})

    async def set_ac_switch(self, device_id: DeviceId, on: bool) -> dict[str, Any]:
        return await self._write(device_id, {"acSwitch": switch_value(on)})

    async def trigger_full_telemetry_update(self, device_id: DeviceId) -> None:
        await self._publisher.request_full_telemetry(device_id)
