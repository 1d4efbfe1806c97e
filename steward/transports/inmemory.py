"""In-memory transport for tests and single-process deployments."""

from __future__ import annotations

import asyncio
from collections import defaultdict, deque
from typing import AsyncIterator, Deque, Dict, Optional, Tuple

from ..contracts import ReconcileRequest
from .base import BaseTransport

RawMessage = Tuple[str, ReconcileRequest]


class InMemoryTransport(BaseTransport[RawMessage]):
    """One deque per topic, polled by subscribers."""

    poll_interval = 0.01

    def __init__(self) -> None:
        self._queues: Dict[str, Deque[RawMessage]] = defaultdict(deque)

    async def publish(self, topic: str, message: ReconcileRequest) -> None:
        self._queues[topic].append((message.to_json(), message))

    def pending(self, topic: str) -> int:
        """Number of messages waiting on ``topic``."""
        return len(self._queues[topic])

    async def subscribe(
        self, topic: str, lifespan: Optional[float] = None
    ) -> AsyncIterator[Tuple[RawMessage, ReconcileRequest]]:
        loop = asyncio.get_running_loop()
        deadline = None if lifespan is None else loop.time() + lifespan
        queue = self._queues[topic]

        while deadline is None or loop.time() < deadline:
            if not queue:
                await asyncio.sleep(self.poll_interval)
                continue
            raw_message = queue.popleft()
            yield raw_message, raw_message[1]

    async def ack(self, raw_message: RawMessage) -> None:
        # Popping the message already removed it.
        pass
