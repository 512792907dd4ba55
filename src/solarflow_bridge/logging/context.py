"""Per-message log context."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

import structlog


@contextmanager
def device_context(device_id: object, **extra: object) -> Iterator[None]:
    """Tag every log line emitted inside the block with ``device_id`` (task-local).

    Keys bound before entering are restored on exit.
    """
    with structlog.contextvars.bound_contextvars(device_id=str(device_id), **extra):
        yield
