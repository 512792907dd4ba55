"""SolarFlow Bridge application entry point and lifecycle orchestrator.

Startup sequence:
  config → logging → device registry → state stores → router/controller →
  MQTT connect → staggered subscriptions → message loop
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import signal
import sys

from solarflow_bridge import __version__
from solarflow_bridge.config.manager import ConfigManager
from solarflow_bridge.config.schema import AppConfig
from solarflow_bridge.control.commands import DeviceController
from solarflow_bridge.devices.registry import DeviceRegistry
from solarflow_bridge.hooks import TelemetryHooks
from solarflow_bridge.logging.structured import setup_logging
from solarflow_bridge.mqtt.client import MQTTClient
from solarflow_bridge.mqtt.publisher import CommandPublisher
from solarflow_bridge.mqtt.router import MessageRouter
from solarflow_bridge.mqtt.subscriptions import plan_subscriptions, run_subscriptions
from solarflow_bridge.state.store import InMemoryStateStore
from solarflow_bridge.telemetry.packs import PackRegistry

logger = logging.getLogger(__name__)


class Application:
    """Main application lifecycle manager.

    Wires all modules together and manages startup/shutdown ordering.
    """

    def __init__(self, config: AppConfig, hooks: TelemetryHooks | None = None) -> None:
        self.config = config
        self.devices = DeviceRegistry.from_config(config.devices)
        self.state = InMemoryStateStore("state")
        self.control = InMemoryStateStore("control")
        self.packs = PackRegistry()
        self.mqtt = MQTTClient(config.mqtt)
        self.publisher = CommandPublisher(self.mqtt.publish)
        self.router = MessageRouter(
            self.state,
            self.control,
            devices=self.devices,
            packs=self.packs,
            hooks=hooks,
            config=config.telemetry,
        )
        self.controller = DeviceController(
            self.state,
            self.control,
            self.publisher,
            devices=self.devices,
            config=config,
        )
        self._running = False
        self._main_task: asyncio.Task | None = None

    def _seed_product_names(self) -> None:
        """Store configured product names so telemetry rules can find them."""
        for device in self.devices.top_level():
            for unit in (device, *device.sub_devices):
                if unit.product_name:
                    self.state.set_value(unit.device_id, "productName", unit.product_name)

    async def _on_connected(self) -> None:
        plan = plan_subscriptions(
            self.devices.top_level(), self.config.mqtt.subscribe_stagger_seconds,
        )
        await run_subscriptions(plan, self.mqtt.subscribe, self.controller.trigger_full_telemetry_update)

    async def start(self) -> None:
        """Start all components and block until the MQTT session ends."""
        logger.info("Starting SolarFlow Bridge v%s", __version__)
        self._running = True
        self._seed_product_names()
        if not len(self.devices):
            logger.warning("No devices configured, nothing to subscribe to")

        self._main_task = asyncio.create_task(
            self.mqtt.run(self.router.handle_message, on_connected=self._on_connected)
        )
        with contextlib.suppress(asyncio.CancelledError):
            await self._main_task
        self._running = False

    async def stop(self) -> None:
        """Cancel the message loop."""
        logger.info("Stopping SolarFlow Bridge")
        self._running = False
        if self._main_task is not None and not self._main_task.done():
            self._main_task.cancel()
            with contextlib.suppress(asyncio.CancelledError, Exception):
                await self._main_task


def main() -> None:
    """CLI entry point."""
    manager = ConfigManager.from_env()
    config = manager.load()

    setup_logging(
        level=config.logging.level,
        fmt=config.logging.format,
        log_file=config.logging.file,
    )
    logger.debug("Effective configuration: %s", manager.to_json())

    app = Application(config)
    stop_requested = False
    signal_count = 0

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    def _request_stop() -> None:
        nonlocal stop_requested, signal_count
        signal_count += 1
        if signal_count >= 2:
            os._exit(130)
        if stop_requested or loop.is_closed():
            return
        stop_requested = True
        loop.call_soon_threadsafe(lambda: asyncio.create_task(app.stop()))

    if sys.platform != "win32":
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, _request_stop)
    else:
        signal.signal(signal.SIGINT, lambda *_: _request_stop())

    try:
        loop.run_until_complete(app.start())
    except KeyboardInterrupt:
        _request_stop()
        with contextlib.suppress(Exception):
            loop.run_until_complete(app.stop())
    finally:
        pending = [task for task in asyncio.all_tasks(loop) if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            with contextlib.suppress(Exception):
                loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
        loop.close()


if __name__ == "__main__":
    main()
