"""SolarFlow Bridge: telemetry normalization and device control over MQTT."""

try:
    from importlib.metadata import version as _pkg_version
    __version__ = _pkg_version("solarflow-bridge")
except Exception:
    __version__ = "dev"
