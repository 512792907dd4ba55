"""Async MQTT client wrapper using aiomqtt."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Coroutine

import aiomqtt

from solarflow_bridge.config.schema import MQTTConfig

logger = logging.getLogger(__name__)

# Type alias for message callback: (topic, payload) -> None
MessageCallback = Callable[[str, bytes], Coroutine[Any, Any, Any]]
ConnectedCallback = Callable[[], Coroutine[Any, Any, Any]]


class MQTTClient:
    """Async MQTT client wrapping one aiomqtt session.

    Messages are delivered to a single callback one at a time. Reconnect
    policy is left to the caller.
    """

    def __init__(self, config: MQTTConfig) -> None:
        self._config = config
        self._client: aiomqtt.Client | None = None
        self._connected = False
        self._tasks: set[asyncio.Task] = set()

    @property
    def is_connected(self) -> bool:
        return self._connected

    def _build_client(self) -> aiomqtt.Client:
        return aiomqtt.Client(
            hostname=self._config.broker_host,
            port=self._config.broker_port,
            username=self._config.username or None,
            password=self._config.password or None,
            identifier=self._config.client_id or None,
        )

    async def publish(self, topic: str, payload: str, retain: bool = False) -> None:
        """Publish a message to a topic."""
        if not self._connected or self._client is None:
            logger.warning("MQTT not connected, dropping publish to %s", topic)
            return

        try:
            await self._client.publish(topic, payload, retain=retain)
        except aiomqtt.MqttError as e:
            logger.error("MQTT publish failed for %s: %s", topic, e)

    async def subscribe(self, topic: str) -> None:
        """Subscribe to a topic filter (wildcards allowed)."""
        if not self._connected or self._client is None:
            raise ConnectionError(f"MQTT not connected, cannot subscribe to {topic}")
        await self._client.subscribe(topic)

    async def run(
        self,
        on_message: MessageCallback,
        on_connected: ConnectedCallback | None = None,
    ) -> None:
        """Connect and deliver messages until the session ends (blocking)."""
        logger.info(
            "MQTT connecting to %s:%d",
            self._config.broker_host, self._config.broker_port,
        )
        try:
            async with self._build_client() as client:
                self._client = client
                self._connected = True
                logger.info("Connected with MQTT")

                if on_connected is not None:
                    task = asyncio.create_task(on_connected())
                    self._tasks.add(task)
                    task.add_done_callback(self._tasks.discard)

                async for message in client.messages:
                    topic = str(message.topic)
                    payload = message.payload
                    if not isinstance(payload, (bytes, bytearray)):
                        payload = b"" if payload is None else str(payload).encode()
                    try:
                        await on_message(topic, bytes(payload))
                    except Exception:
                        logger.exception("MQTT callback error for %s", topic)
        except aiomqtt.MqttError as e:
            logger.error("MQTT listener error: %s", e)
        finally:
            self._connected = False
            self._client = None
            for task in list(self._tasks):
                task.cancel()
            logger.info("MQTT client disconnected")
