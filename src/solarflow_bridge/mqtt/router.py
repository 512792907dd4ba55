"""Inbound MQTT message router.

topic → device identity → JSON body → property and pack normalization →
store updates → hooks. A message is applied entirely or not at all: parsing
and normalization finish before the first store write.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable

from solarflow_bridge.config.schema import TelemetryConfig
from solarflow_bridge.devices.family import DeviceId, is_solarflow_like
from solarflow_bridge.devices.registry import DeviceRegistry
from solarflow_bridge.diagnostics import (
    PARSE_ERROR,
    ROUTING_ERROR,
    Diagnostic,
    DiagnosticSink,
    log_diagnostic,
)
from solarflow_bridge.errors import ParseError, RoutingError
from solarflow_bridge.hooks import HookInvocation, HookName, TelemetryHooks
from solarflow_bridge.logging.context import device_context
from solarflow_bridge.mqtt.topics import is_forced_logout, parse_device_topic
from solarflow_bridge.state.store import StateStore
from solarflow_bridge.telemetry.converters import as_number
from solarflow_bridge.telemetry.models import CanonicalUpdate, ControlMirrorUpdate, PackUpdate
from solarflow_bridge.telemetry.normalizer import PropertyNormalizer
from solarflow_bridge.telemetry.packs import PackRegistry, normalize_packs
from solarflow_bridge.telemetry.staleness import classify_connection

logger = logging.getLogger(__name__)

_PAYLOAD_PREVIEW_CHARS = 500


@dataclass
class RouteResult:
    """Everything one inbound message produced."""

    device_id: DeviceId
    updates: list[CanonicalUpdate] = field(default_factory=list)
    mirror: list[ControlMirrorUpdate] = field(default_factory=list)
    packs: list[PackUpdate] = field(default_factory=list)
    hooks: list[HookInvocation] = field(default_factory=list)
    diagnostics: list[Diagnostic] = field(default_factory=list)
    forced_logout: bool = False

    def values(self) -> dict[str, Any]:
        return {u.field: u.value for u in self.updates}


def decode_body(payload: bytes | str) -> dict[str, Any]:
    """Decode a JSON object payload.

    Raises:
        ParseError: Not UTF-8, not JSON, or not a JSON object.
    """
    try:
        text = payload.decode() if isinstance(payload, (bytes, bytearray)) else str(payload)
        body = json.loads(text)
    except (UnicodeDecodeError, ValueError) as e:
        raise ParseError(f"Invalid JSON payload: {e}") from e
    if not isinstance(body, dict):
        raise ParseError(f"Payload must be a JSON object, got {type(body).__name__}")
    return body


class MessageRouter:
    """Dispatches inbound transport messages to the telemetry normalizers."""

    def __init__(
        self,
        state: StateStore,
        control: StateStore,
        devices: DeviceRegistry | None = None,
        packs: PackRegistry | None = None,
        hooks: TelemetryHooks | None = None,
        config: TelemetryConfig | None = None,
        diagnostics: DiagnosticSink = log_diagnostic,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._state = state
        self._control = control
        self._devices = devices if devices is not None else DeviceRegistry()
        self._packs = packs if packs is not None else PackRegistry()
        self._hooks = hooks if hooks is not None else TelemetryHooks()
        self._config = config if config is not None else TelemetryConfig()
        self._diagnostics = diagnostics
        self._clock = clock
        self._normalizer = PropertyNormalizer(self._config)

    @property
    def packs(self) -> PackRegistry:
        return self._packs

    def _product_name(self, device_id: DeviceId) -> str | None:
        name = self._state.get_value(device_id, "productName") or self._devices.product_name(device_id)
        return str(name).lower() if name else None

    def route(self, topic: str, payload: bytes | str) -> RouteResult:
        """Parse and normalize one message without touching the stores.

        Raises:
            RoutingError: Device identity missing from the topic.
            ParseError: Body malformed or a value could not be converted.
        """
        device_id = parse_device_topic(topic)
        body = decode_body(payload)
        now = self._clock()

        product_name = self._product_name(device_id)
        solarflow_like = is_solarflow_like(device_id.product_key, product_name)

        result = RouteResult(device_id=device_id, forced_logout=is_forced_logout(topic))
        result.updates.append(CanonicalUpdate(device_id, "lastUpdate", int(now * 1000)))

        timestamp = body.get("timestamp")
        if timestamp:
            wifi_state = classify_connection(
                as_number(timestamp), now, self._config.offline_threshold_seconds
            )
            result.updates.append(CanonicalUpdate(device_id, "wifiState", wifi_state))

        properties = body.get("properties")
        if properties is not None:
            normalized = self._normalizer.normalize(
                device_id,
                product_name,
                properties,
                self._state.snapshot(device_id),
                self._control.snapshot(device_id),
                solarflow_like=solarflow_like,
                connected_with_ace=self._devices.is_connected_with_ace(device_id),
            )
            result.updates.extend(normalized.updates)
            result.mirror.extend(normalized.mirror)
            result.hooks.extend(normalized.hooks)
            result.diagnostics.extend(normalized.diagnostics)

        pack_data = body.get("packData")
        if pack_data is not None:
            batch = normalize_packs(
                device_id, device_id.product_key, pack_data, solarflow_like, self._packs
            )
            result.packs.extend(batch.updates)
            result.hooks.extend(batch.hooks)
            result.diagnostics.extend(batch.diagnostics)

        return result

    def apply(self, result: RouteResult) -> None:
        """Write a routed message's updates to the stores."""
        for update in result.updates:
            self._state.set_value(update.device_id, update.field, update.value)
        for mirrored in result.mirror:
            self._control.set_value(mirrored.device_id, mirrored.field, mirrored.value)
        for pack in result.packs:
            prefix = f"packData.{pack.record.serial}"
            for name, value in pack.record.state_fields().items():
                self._state.set_value(pack.device_id, f"{prefix}.{name}", value)

    async def handle_message(self, topic: str, payload: bytes | str) -> RouteResult | None:
        """Transport callback: route, apply, run hooks. Never raises for bad input."""
        forced_logout = is_forced_logout(topic)
        if forced_logout:
            logger.warning("Received 'loginOut/force' on topic: %s", topic)
            await self._hooks.invoke(HookInvocation(HookName.FORCED_LOGOUT, None, (topic,)))
            if not payload:
                return None

        try:
            device_id = parse_device_topic(topic)
        except RoutingError as e:
            self._diagnostics(Diagnostic(
                level=logging.WARNING,
                message=str(e),
                category=ROUTING_ERROR,
                context={"topic": topic},
            ))
            return None

        with device_context(device_id):
            try:
                result = self.route(topic, payload)
            except ParseError as e:
                text = payload.decode(errors="replace") if isinstance(payload, (bytes, bytearray)) else str(payload)
                self._diagnostics(Diagnostic(
                    level=logging.ERROR,
                    message=f"Message for {device_id} discarded: {e}",
                    category=PARSE_ERROR,
                    device_id=str(device_id),
                    context={"topic": topic, "payload": text[:_PAYLOAD_PREVIEW_CHARS]},
                ))
                return None

            logger.debug("MQTT message for %s: %d update(s)", device_id, len(result.updates))
            self.apply(result)
            for invocation in result.hooks:
                await self._hooks.invoke(invocation)
            for diagnostic in result.diagnostics:
                self._diagnostics(diagnostic)
            return result
