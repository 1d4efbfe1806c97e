"""Transports and the configured-transport factory."""

from __future__ import annotations

import os
from typing import Callable, Dict, Optional

from ..config import StewardConfig, TransportConfig, load_config
from .base import BaseTransport
from .inmemory import InMemoryTransport


def _redis_transport(settings: TransportConfig) -> BaseTransport:
    from .redis import RedisTransport

    return RedisTransport.from_config(settings.redis)


_BACKENDS: Dict[str, Callable[[TransportConfig], BaseTransport]] = {
    "inmemory": lambda settings: InMemoryTransport(),
    "redis": _redis_transport,
}


def get_transport(
    backend: Optional[str] = None, config: Optional[StewardConfig] = None
) -> BaseTransport:
    """Build the transport named by ``backend``, ``STEWARD_TRANSPORT`` or config.

    Every call returns a new transport; controllers and the change-notifying
    store only share a queue when they share the instance or a broker.
    """

    config = config or load_config()
    name = (backend or os.getenv("STEWARD_TRANSPORT") or config.transport.backend).lower()
    factory = _BACKENDS.get(name)
    if factory is None:
        raise ValueError(f"Unsupported transport backend: {name}")
    return factory(config.transport)


__all__ = ["BaseTransport", "InMemoryTransport", "get_transport"]
