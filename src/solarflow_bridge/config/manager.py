"""Configuration loading: YAML defaults + user overrides + environment credentials."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Mapping

import yaml

from solarflow_bridge.config.schema import AppConfig

logger = logging.getLogger(__name__)

DEFAULTS_ENV = "SOLARFLOW_DEFAULTS"
CONFIG_ENV = "SOLARFLOW_CONFIG"

# Environment variable -> (section, key). Credentials are kept out of YAML.
_ENV_OVERRIDES = {
    "SOLARFLOW_MQTT_USERNAME": ("mqtt", "username"),
    "SOLARFLOW_MQTT_PASSWORD": ("mqtt", "password"),
}

_REDACTED = "********"


class ConfigManager:
    """Resolves the bridge configuration and validates it into an AppConfig.

    Order of precedence (last wins): defaults file, user file, environment.
    The ``devices`` list is merged per ``device_key`` instead of being
    replaced wholesale, so a user file can rename one unit without
    repeating the others.
    """

    def __init__(
        self,
        defaults_path: Path | None = None,
        user_path: Path | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self._defaults_path = defaults_path or Path("config.defaults.yaml")
        self._user_path = user_path or Path("config.yaml")
        self._environ = os.environ if environ is None else environ
        self._config: AppConfig | None = None

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> ConfigManager:
        """Build a manager whose file paths come from SOLARFLOW_DEFAULTS / SOLARFLOW_CONFIG."""
        env = os.environ if environ is None else environ
        return cls(
            defaults_path=Path(env.get(DEFAULTS_ENV, "config.defaults.yaml")).expanduser(),
            user_path=Path(env.get(CONFIG_ENV, "config.yaml")).expanduser(),
            environ=env,
        )

    @property
    def config(self) -> AppConfig:
        if self._config is None:
            raise RuntimeError("Config not loaded. Call load() first.")
        return self._config

    def load(self) -> AppConfig:
        defaults = self._load_yaml(self._defaults_path)
        overrides = self._load_yaml(self._user_path)
        merged = self._merge(defaults, overrides)
        merged = self._apply_environment(merged)
        self._config = AppConfig.model_validate(merged)
        logger.info(
            "Configuration loaded: %d device(s), broker %s:%d",
            len(self._config.devices),
            self._config.mqtt.broker_host,
            self._config.mqtt.broker_port,
        )
        return self._config

    def to_json(self) -> str:
        """Validated config as JSON, with the broker password masked."""
        data = self.config.model_dump(mode="json")
        if data["mqtt"].get("password"):
            data["mqtt"]["password"] = _REDACTED
        return json.dumps(data, indent=2)

    def _apply_environment(self, data: dict[str, Any]) -> dict[str, Any]:
        result = dict(data)
        for var, (section, key) in _ENV_OVERRIDES.items():
            value = self._environ.get(var)
            if value:
                result[section] = {**result.get(section, {}), key: value}
                logger.debug("Config %s.%s taken from %s", section, key, var)
        return result

    @staticmethod
    def _load_yaml(path: Path) -> dict[str, Any]:
        if not path.exists():
            return {}
        with open(path) as f:
            data = yaml.safe_load(f)
        return data if isinstance(data, dict) else {}

    @staticmethod
    def _merge_devices(base: list[Any], override: list[Any]) -> list[Any]:
        """Override entries replace base entries with the same device_key; new ones are appended."""
        merged = {d.get("device_key"): d for d in base if isinstance(d, dict)}
        for device in override:
            if isinstance(device, dict):
                merged[device.get("device_key")] = device
        return list(merged.values())

    @classmethod
    def _merge(cls, base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
        """Recursively merge override into base, returning a new dict."""
        result = dict(base)
        for key, value in override.items():
            existing = result.get(key)
            if isinstance(existing, dict) and isinstance(value, dict):
                result[key] = cls._merge(existing, value)
            elif key == "devices" and isinstance(existing, list) and isinstance(value, list):
                result[key] = cls._merge_devices(existing, value)
            else:
                result[key] = value
        return result
