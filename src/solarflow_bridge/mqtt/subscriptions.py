"""Staggered per-device subscription schedule.

Subscribing to many devices at once bursts the broker right after connect,
so each device gets its own delay slot. ACE units attached behind a hub are
scheduled after the hub.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from solarflow_bridge.devices.family import SMART_PLUG_PRODUCT_KEY, DeviceId
from solarflow_bridge.devices.registry import DeviceDetails
from solarflow_bridge.mqtt.topics import iot_topic, report_topic

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Subscription:
    delay_seconds: float
    topic: str
    device_id: DeviceId
    refresh_on_subscribe: bool = False  # Request getAll once subscribed


def plan_subscriptions(devices: list[DeviceDetails], stagger_seconds: float = 1.0) -> list[Subscription]:
    """Build the subscription schedule, ordered by delay."""
    plan: list[Subscription] = []
    for index, device in enumerate(devices):
        base = index * stagger_seconds
        plan.append(Subscription(base, report_topic(device.device_id), device.device_id))
        # Smart plugs report on their own topic and have no iot channel.
        if device.product_key != SMART_PLUG_PRODUCT_KEY:
            plan.append(Subscription(
                base + stagger_seconds / 2, iot_topic(device.device_id), device.device_id, True,
            ))

        for sub_index, sub in enumerate(device.ace_sub_devices):
            sub_base = (index + 1) * stagger_seconds + 0.2 * stagger_seconds * sub_index
            plan.append(Subscription(sub_base, report_topic(sub.device_id), sub.device_id))
            plan.append(Subscription(
                sub_base + 0.1 * stagger_seconds, iot_topic(sub.device_id), sub.device_id, True,
            ))

    return sorted(plan, key=lambda s: s.delay_seconds)


async def run_subscriptions(
    plan: list[Subscription],
    subscribe_fn: Callable[[str], Awaitable[Any]],
    refresh_fn: Callable[[DeviceId], Awaitable[Any]] | None = None,
) -> int:
    """Subscribe sequentially at each entry's delay. Returns successful subscriptions."""
    loop = asyncio.get_running_loop()
    started = loop.time()
    subscribed = 0

    for entry in plan:
        wait = entry.delay_seconds - (loop.time() - started)
        if wait > 0:
            await asyncio.sleep(wait)
        try:
            await subscribe_fn(entry.topic)
        except Exception as e:
            logger.error("Subscription to %s failed: %s", entry.topic, e)
            continue

        subscribed += 1
        logger.debug("Subscribed to %s", entry.topic)
        if entry.refresh_on_subscribe and refresh_fn is not None:
            await refresh_fn(entry.device_id)

    logger.info("Subscribed to %d of %d topic(s)", subscribed, len(plan))
    return subscribed
