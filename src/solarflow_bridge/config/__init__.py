"""Configuration management for the SolarFlow bridge."""

from solarflow_bridge.config.schema import AppConfig
from solarflow_bridge.config.manager import ConfigManager

__all__ = ["AppConfig", "ConfigManager"]
