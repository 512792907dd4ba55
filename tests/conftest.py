"""Shared test fixtures for the SolarFlow bridge."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from solarflow_bridge.config.manager import ConfigManager
from solarflow_bridge.config.schema import AppConfig
from solarflow_bridge.devices.family import DeviceId
from solarflow_bridge.devices.registry import DeviceDetails, DeviceRegistry
from solarflow_bridge.diagnostics import Diagnostic
from solarflow_bridge.hooks import TelemetryHooks
from solarflow_bridge.mqtt.router import MessageRouter
from solarflow_bridge.state.store import InMemoryStateStore
from solarflow_bridge.telemetry.packs import PackRegistry

NOW = 1_700_000_000.0

HUB = DeviceId("73bkTV", "hub1")
HYPER = DeviceId("ja72U0ha", "hyper1")
ACE = DeviceId("8bM93H", "d1")


@pytest.fixture
def config() -> AppConfig:
    """Provide a default test configuration."""
    return AppConfig()


@pytest.fixture
def config_manager(tmp_path: Path) -> ConfigManager:
    """Provide a config manager with test paths."""
    defaults = tmp_path / "config.defaults.yaml"
    defaults.write_text("mqtt:\n  broker_host: broker.test\n")
    user = tmp_path / "config.yaml"
    mgr = ConfigManager(defaults_path=defaults, user_path=user, environ={})
    mgr.load()
    return mgr


@pytest.fixture
def state() -> InMemoryStateStore:
    return InMemoryStateStore("state")


@pytest.fixture
def control() -> InMemoryStateStore:
    return InMemoryStateStore("control")


@pytest.fixture
def devices() -> DeviceRegistry:
    return DeviceRegistry([
        DeviceDetails(HUB.product_key, HUB.device_key, "solarflow 800 pro"),
        DeviceDetails(HYPER.product_key, HYPER.device_key, "hyper 2000"),
        DeviceDetails(ACE.product_key, ACE.device_key, "ace 1500"),
    ])


@pytest.fixture
def diagnostics() -> list[Diagnostic]:
    return []


@pytest.fixture
def hooks() -> TelemetryHooks:
    return TelemetryHooks(
        energy_max_capture=AsyncMock(),
        reset_soc_to_zero=AsyncMock(),
        voltage_supervision=AsyncMock(),
        forced_logout=AsyncMock(),
    )


@pytest.fixture
def router(
    state: InMemoryStateStore,
    control: InMemoryStateStore,
    devices: DeviceRegistry,
    hooks: TelemetryHooks,
    diagnostics: list[Diagnostic],
) -> MessageRouter:
    return MessageRouter(
        state,
        control,
        devices=devices,
        packs=PackRegistry(),
        hooks=hooks,
        diagnostics=diagnostics.append,
        clock=lambda: NOW,
    )
