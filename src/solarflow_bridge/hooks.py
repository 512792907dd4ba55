"""External side effects requested by the telemetry core.

The normalizers only report that a hook should run; the router invokes the
registered callable. Hook failures are logged and never propagate into the
message loop.
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

from solarflow_bridge.devices.family import DeviceId

logger = logging.getLogger(__name__)


class HookName(str, Enum):
    ENERGY_MAX_CAPTURE = "energy_max_capture"
    RESET_SOC_TO_ZERO = "reset_soc_to_zero"
    VOLTAGE_SUPERVISION = "voltage_supervision"
    FORCED_LOGOUT = "forced_logout"


@dataclass(frozen=True)
class HookInvocation:
    name: HookName
    device_id: DeviceId | None = None
    args: tuple[Any, ...] = ()


@dataclass
class TelemetryHooks:
    """Callables for each hook; sync or async, all optional.

    Signatures:
      energy_max_capture(device_id)
      reset_soc_to_zero(device_id)
      voltage_supervision(device_id, voltage)
      forced_logout(topic)
    """

    energy_max_capture: Callable[..., Any] | None = None
    reset_soc_to_zero: Callable[..., Any] | None = None
    voltage_supervision: Callable[..., Any] | None = None
    forced_logout: Callable[..., Any] | None = None

    async def invoke(self, invocation: HookInvocation) -> bool:
        """Run the hook for an invocation. Returns False if it failed."""
        fn = getattr(self, invocation.name.value)
        if fn is None:
            logger.debug("No handler for hook %s (%s)", invocation.name.value, invocation.device_id)
            return True

        args: tuple[Any, ...] = invocation.args
        if invocation.device_id is not None:
            args = (invocation.device_id, *args)
        try:
            result = fn(*args)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("Hook %s failed for %s", invocation.name.value, invocation.device_id)
            return False
        return True
