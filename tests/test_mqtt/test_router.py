"""Tests for the inbound message router."""

from __future__ import annotations

import json
import logging

import pytest

from solarflow_bridge.devices.family import DeviceId
from solarflow_bridge.devices.registry import DeviceDetails, DeviceRegistry
from solarflow_bridge.diagnostics import PARSE_ERROR, ROUTING_ERROR, UNKNOWN_PROPERTY, Diagnostic
from solarflow_bridge.errors import ParseError
from solarflow_bridge.hooks import HookName, TelemetryHooks
from solarflow_bridge.mqtt.router import MessageRouter, decode_body
from solarflow_bridge.state.store import InMemoryStateStore
from solarflow_bridge.telemetry.packs import PackRegistry

NOW = 1_700_000_000.0
HUB = DeviceId("73bkTV", "hub1")
HUB_REPORT = "/73bkTV/hub1/properties/report"


def _body(**kwargs) -> bytes:
    return json.dumps(kwargs).encode()


class TestDecodeBody:
    def test_object(self) -> None:
        assert decode_body(b'{"a": 1}') == {"a": 1}
        assert decode_body('{"a": 1}') == {"a": 1}

    @pytest.mark.parametrize("payload", [b"{not json", b"[1, 2]", b"\xff\xfe", b""])
    def test_rejected(self, payload: bytes) -> None:
        with pytest.raises(ParseError):
            decode_body(payload)


class TestRoute:
    def test_route_is_pure(self, router: MessageRouter, state: InMemoryStateStore) -> None:
        result = router.route(HUB_REPORT, _body(properties={"electricLevel": 55}))
        assert result.device_id == HUB
        assert result.values()["electricLevel"] == 55
        assert state.snapshot(HUB) == {}

    def test_last_update_in_ms(self, router: MessageRouter) -> None:
        result = router.route(HUB_REPORT, _body())
        assert result.values() == {"lastUpdate": int(NOW * 1000)}

    def test_fresh_timestamp_connected(self, router: MessageRouter) -> None:
        result = router.route(HUB_REPORT, _body(timestamp=NOW - 10))
        assert result.values()["wifiState"] == "Connected"

    def test_stale_timestamp_disconnected(self, router: MessageRouter) -> None:
        result = router.route(HUB_REPORT, _body(timestamp=NOW - 301))
        assert result.values()["wifiState"] == "Disconnected"

    def test_explicit_wifi_state_wins(self, router: MessageRouter) -> None:
        result = router.route(HUB_REPORT, _body(timestamp=NOW, properties={"wifiState": 0}))
        assert result.values()["wifiState"] == "Disconnected"

    def test_non_object_properties(self, router: MessageRouter) -> None:
        with pytest.raises(ParseError):
            router.route(HUB_REPORT, _body(properties=[1, 2]))


class TestHandleMessage:
    @pytest.mark.asyncio
    async def test_applies_state_and_mirror(
        self, router: MessageRouter, state: InMemoryStateStore, control: InMemoryStateStore,
    ) -> None:
        await router.handle_message(HUB_REPORT, _body(properties={"socSet": 900, "outputLimit": 600}))
        assert state.get_value(HUB, "socSet") == 90.0
        assert state.get_value(HUB, "outputLimit") == 600
        assert control.get_value(HUB, "chargeLimit") == 90.0
        assert control.get_value(HUB, "setOutputLimit") == 600

    @pytest.mark.asyncio
    async def test_unknown_property_one_diagnostic(
        self, router: MessageRouter, diagnostics: list[Diagnostic],
    ) -> None:
        result = await router.handle_message(HUB_REPORT, _body(properties={"xyz": 1}))
        assert result is not None
        assert set(result.values()) == {"lastUpdate"}
        assert [d.category for d in diagnostics] == [UNKNOWN_PROPERTY]

    @pytest.mark.asyncio
    async def test_malformed_json_dropped(
        self, router: MessageRouter, state: InMemoryStateStore, diagnostics: list[Diagnostic],
    ) -> None:
        result = await router.handle_message(HUB_REPORT, b"{not json")
        assert result is None
        assert state.snapshot(HUB) == {}
        assert len(diagnostics) == 1
        assert diagnostics[0].category == PARSE_ERROR
        assert diagnostics[0].level == logging.ERROR
        assert diagnostics[0].context["payload"] == "{not json"

    @pytest.mark.asyncio
    async def test_bad_value_applies_nothing(
        self, router: MessageRouter, state: InMemoryStateStore, diagnostics: list[Diagnostic],
    ) -> None:
        payload = _body(properties={"electricLevel": 40, "power": "n/a"}, packData=[{"sn": "A1"}])
        assert await router.handle_message(HUB_REPORT, payload) is None
        assert state.snapshot(HUB) == {}
        assert len(router.packs) == 0
        assert [d.category for d in diagnostics] == [PARSE_ERROR]

    @pytest.mark.asyncio
    async def test_routing_error(
        self, router: MessageRouter, diagnostics: list[Diagnostic], hooks: TelemetryHooks,
    ) -> None:
        assert await router.handle_message("/73bkTV", _body(properties={"power": 1})) is None
        assert [d.category for d in diagnostics] == [ROUTING_ERROR]
        assert diagnostics[0].context == {"topic": "/73bkTV"}

    @pytest.mark.asyncio
    async def test_forced_logout_empty_body(
        self, router: MessageRouter, hooks: TelemetryHooks, diagnostics: list[Diagnostic],
    ) -> None:
        topic = "/server/app/73bkTV/hub1/loginOut/force"
        assert await router.handle_message(topic, b"") is None
        hooks.forced_logout.assert_awaited_once_with(topic)
        assert diagnostics == []

    @pytest.mark.asyncio
    async def test_forced_logout_with_body_still_routed(
        self, router: MessageRouter, hooks: TelemetryHooks, state: InMemoryStateStore,
    ) -> None:
        topic = "/server/app/73bkTV/hub1/loginOut/force"
        result = await router.handle_message(topic, _body(properties={"electricLevel": 12}))
        assert result is not None
        assert result.forced_logout is True
        hooks.forced_logout.assert_awaited_once()
        assert state.get_value(HUB, "electricLevel") == 12

    @pytest.mark.asyncio
    async def test_energy_capture_hook(self, router: MessageRouter, hooks: TelemetryHooks) -> None:
        await router.handle_message(HUB_REPORT, _body(properties={"electricLevel": 100}))
        hooks.energy_max_capture.assert_awaited_once_with(HUB)
        hooks.reset_soc_to_zero.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_hook_failure_does_not_block(
        self, router: MessageRouter, hooks: TelemetryHooks, state: InMemoryStateStore,
    ) -> None:
        hooks.energy_max_capture.side_effect = RuntimeError("boom")
        result = await router.handle_message(HUB_REPORT, _body(properties={"electricLevel": 100}))
        assert result is not None
        assert state.get_value(HUB, "electricLevel") == 100

    @pytest.mark.asyncio
    async def test_pack_data_stored(
        self, router: MessageRouter, hooks: TelemetryHooks, state: InMemoryStateStore,
    ) -> None:
        payload = _body(packData=[{"sn": "CO4FLJ0001", "socLevel": 80, "totalVol": 5120}])
        result = await router.handle_message(HUB_REPORT, payload)

        assert result is not None
        assert result.packs[0].is_new is True
        assert state.get_value(HUB, "packData.CO4FLJ0001.model") == "AB2000S"
        assert state.get_value(HUB, "packData.CO4FLJ0001.socLevel") == 80
        assert state.get_value(HUB, "packData.CO4FLJ0001.totalVol") == 51.2
        hooks.voltage_supervision.assert_awaited_once_with(HUB, 51.2)

    @pytest.mark.asyncio
    async def test_ace_packs_not_supervised(self, router: MessageRouter, hooks: TelemetryHooks) -> None:
        payload = _body(packData=[{"sn": "A1", "totalVol": 5120}])
        await router.handle_message("/8bM93H/d1/properties/report", payload)
        hooks.voltage_supervision.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_without_hooks(self, state: InMemoryStateStore, control: InMemoryStateStore) -> None:
        router = MessageRouter(state, control, clock=lambda: NOW, diagnostics=lambda d: None)
        result = await router.handle_message(HUB_REPORT, _body(properties={"electricLevel": 100}))
        assert result is not None
        assert [h.name for h in result.hooks] == [HookName.ENERGY_MAX_CAPTURE]

    @pytest.mark.asyncio
    async def test_sync_hook_supported(self, state: InMemoryStateStore, control: InMemoryStateStore) -> None:
        seen: list = []
        router = MessageRouter(
            state, control,
            hooks=TelemetryHooks(reset_soc_to_zero=seen.append),
            clock=lambda: NOW,
        )
        state.set_value(HUB, "minSoc", 10.0)
        await router.handle_message(HUB_REPORT, _body(properties={"electricLevel": 10}))
        assert seen == [HUB]


class TestSharedRegistries:
    @pytest.mark.asyncio
    async def test_devices_added_after_construction(
        self, state: InMemoryStateStore, control: InMemoryStateStore,
    ) -> None:
        devices = DeviceRegistry()
        router = MessageRouter(state, control, devices=devices, clock=lambda: NOW)
        devices.add(DeviceDetails(
            HUB.product_key, HUB.device_key, "solarflow hub 2000",
            sub_devices=[DeviceDetails("8bM93H", "ace1", "ace 1500")],
        ))
        await router.handle_message(
            HUB_REPORT, _body(properties={"solarInputPower": 400, "packInputPower": 100}),
        )
        assert state.get_value(HUB, "packInputPower") == 107

    @pytest.mark.asyncio
    async def test_empty_pack_registry_is_filled(
        self, state: InMemoryStateStore, control: InMemoryStateStore,
    ) -> None:
        packs = PackRegistry()
        router = MessageRouter(state, control, packs=packs, clock=lambda: NOW)
        assert router.packs is packs
        await router.handle_message(HUB_REPORT, _body(packData=[{"sn": "CO4FLJ0001", "socLevel": 80}]))
        assert packs.packs_for(HUB.device_key) == {"CO4FLJ0001": "AB2000S"}
