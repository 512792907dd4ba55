"""Tests for battery pack normalization and the pack registry."""

from __future__ import annotations

import pytest

from solarflow_bridge.devices.family import AIO_PRODUCT_KEY, DeviceId
from solarflow_bridge.diagnostics import UNKNOWN_PACK_PROPERTY
from solarflow_bridge.errors import ParseError
from solarflow_bridge.hooks import HookName
from solarflow_bridge.telemetry.packs import PackRegistry, derive_pack_type, normalize_packs

HUB = DeviceId("73bkTV", "hub1")


class TestDerivePackType:
    @pytest.mark.parametrize(
        ("serial", "product_key", "expected"),
        [
            ("CO4FLJ0000", "73bkTV", "AB2000S"),
            ("CO4HLJ0000", "73bkTV", "AB2000"),
            ("AO4HLJ0000", "73bkTV", "AB1000"),
            ("XO4HLJ0000", "73bkTV", ""),
            ("XO4HLJ0000", AIO_PRODUCT_KEY, "AIO2400"),
            ("CO4FLJ0000", AIO_PRODUCT_KEY, "AIO2400"),
        ],
    )
    def test_pack_type(self, serial: str, product_key: str, expected: str) -> None:
        assert derive_pack_type(serial, product_key) == expected


class TestPackRegistry:
    def test_register_once(self) -> None:
        registry = PackRegistry()
        assert registry.register("A1", "hub1", "AB1000") is True
        assert registry.register("A1", "hub1", "AB1000") is False
        assert len(registry) == 1

    def test_same_serial_on_other_device(self) -> None:
        registry = PackRegistry()
        registry.register("A1", "hub1", "AB1000")
        assert registry.register("A1", "hub2", "AB1000") is True
        assert registry.packs_for("hub1") == {"A1": "AB1000"}


class TestNormalizePacks:
    def test_converts_fields(self) -> None:
        batch = normalize_packs(HUB, "73bkTV", [{
            "sn": "CO4FLJ0000", "socLevel": 55, "maxTemp": 2981,
            "minVol": 330, "maxVol": 335, "totalVol": 5120, "soh": 985,
        }], True, PackRegistry())
        assert len(batch.updates) == 1
        record = batch.updates[0].record
        assert record.pack_type == "AB2000S"
        assert record.soc_percent == 55
        assert record.max_temp_c == pytest.approx(24.95)
        assert record.min_volt_v == 3.3
        assert record.max_volt_v == 3.35
        assert record.total_volt_v == 51.2
        assert record.state_of_health_percent == 98.5
        assert batch.diagnostics == []

    def test_new_pack_flag_only_first_time(self) -> None:
        registry = PackRegistry()
        first = normalize_packs(HUB, "73bkTV", [{"sn": "A1", "socLevel": 50}], True, registry)
        second = normalize_packs(HUB, "73bkTV", [{"sn": "A1", "socLevel": 51}], True, registry)
        assert first.updates[0].is_new is True
        assert second.updates[0].is_new is False
        assert second.updates[0].record.pack_type == "AB1000"

    def test_record_without_serial_skipped(self) -> None:
        registry = PackRegistry()
        batch = normalize_packs(HUB, "73bkTV", [{"socLevel": 50}, {"sn": "", "socLevel": 1}], True, registry)
        assert batch.updates == []
        assert len(registry) == 0

    def test_voltage_supervision_carries_minimum(self) -> None:
        batch = normalize_packs(HUB, "73bkTV", [
            {"sn": "A1", "totalVol": 5120},
            {"sn": "A2", "totalVol": 4980},
        ], True, PackRegistry())
        assert len(batch.hooks) == 1
        hook = batch.hooks[0]
        assert hook.name == HookName.VOLTAGE_SUPERVISION
        assert hook.device_id == HUB
        assert hook.args == (49.8,)

    def test_no_supervision_for_non_solar_device(self) -> None:
        batch = normalize_packs(HUB, "8bM93H", [{"sn": "A1", "totalVol": 5120}], False, PackRegistry())
        assert batch.hooks == []

    def test_no_supervision_without_total_voltage(self) -> None:
        batch = normalize_packs(HUB, "73bkTV", [{"sn": "A1", "socLevel": 5}], True, PackRegistry())
        assert batch.hooks == []

    def test_unknown_field_diagnostic(self) -> None:
        batch = normalize_packs(HUB, "73bkTV", [{"sn": "A1", "power": 12}], True, PackRegistry())
        assert len(batch.diagnostics) == 1
        assert batch.diagnostics[0].category == UNKNOWN_PACK_PROPERTY
        assert batch.diagnostics[0].context["serial"] == "A1"

    def test_bad_record_registers_nothing(self) -> None:
        registry = PackRegistry()
        with pytest.raises(ParseError):
            normalize_packs(HUB, "73bkTV", [
                {"sn": "A1", "socLevel": 50},
                {"sn": "A2", "totalVol": "n/a"},
            ], True, registry)
        assert len(registry) == 0

    def test_not_a_list_raises(self) -> None:
        with pytest.raises(ParseError):
            normalize_packs(HUB, "73bkTV", "nope", True, PackRegistry())
        with pytest.raises(ParseError):
            normalize_packs(HUB, "73bkTV", [1], True, PackRegistry())

    def test_state_fields(self) -> None:
        batch = normalize_packs(HUB, "73bkTV", [{"sn": "A1", "socLevel": 50}], True, PackRegistry())
        assert batch.updates[0].record.state_fields() == {"model": "AB1000", "sn": "A1", "socLevel": 50}
