"""Pydantic configuration models for all bridge settings."""

from __future__ import annotations

from pydantic import BaseModel, Field


class MQTTConfig(BaseModel):
    broker_host: str = "localhost"
    broker_port: int = 1883
    username: str = ""
    password: str = ""
    client_id: str = "solarflow-bridge"
    subscribe_stagger_seconds: float = Field(1.0, ge=0.0)  # Delay between per-device subscriptions


class SubDeviceConfig(BaseModel):
    """A unit attached behind a hub (e.g. an ACE 1500 in the hub's pack list)."""

    product_key: str
    device_key: str
    product_name: str = ""


class DeviceConfig(BaseModel):
    product_key: str
    device_key: str
    product_name: str = ""
    sub_devices: list[SubDeviceConfig] = Field(default_factory=list)


class TelemetryConfig(BaseModel):
    offline_threshold_seconds: int = Field(300, ge=0)  # 0 = use default of 300s
    use_calculation: bool = True  # Enables energy-max / reset-SOC hooks


class ControlConfig(BaseModel):
    use_low_voltage_block: bool = False  # Force output limit to 0 while blocked


class LimitsConfig(BaseModel):
    """Calibration values for command clamping.

    The ACE ceiling and the output step table are inferred from device
    behaviour rather than vendor documentation, so they stay overridable.
    """

    input_limit_max_default: int = 900
    input_limit_max_hyper: int = 1200
    input_limit_max_ace: int = 1800
    input_limit_min: int = 30  # Floor for small non-zero setpoints (generic families)
    ace_input_limit_step: int = 100
    output_limit_max: int = 1200
    output_limit_snap_below: int = 100
    output_limit_steps: list[int] = Field(default_factory=lambda: [0, 30, 60, 90])


class LoggingConfig(BaseModel):
    level: str = "INFO"
    format: str = "json"
    file: str = ""


class AppConfig(BaseModel):
    """Root configuration model containing all bridge settings."""

    mqtt: MQTTConfig = MQTTConfig()
    devices: list[DeviceConfig] = Field(default_factory=list)
    telemetry: TelemetryConfig = TelemetryConfig()
    control: ControlConfig = ControlConfig()
    limits: LimitsConfig = LimitsConfig()
    logging: LoggingConfig = LoggingConfig()
