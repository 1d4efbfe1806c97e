"""Transport interface carrying reconcile requests to controllers."""

from __future__ import annotations

import abc
from typing import AsyncIterator, Generic, Optional, Tuple, TypeVar

from ..apis import ResourceKey
from ..contracts import ReconcileRequest, topic_for

RawMessageT = TypeVar("RawMessageT")


class BaseTransport(Generic[RawMessageT], metaclass=abc.ABCMeta):
    """A queue per topic, one topic per watched kind.

    Delivery is at least once: a controller may see the same key several
    times and reconciling is idempotent, so duplicates are harmless.
    """

    async def connect(self) -> None:
        pass

    async def disconnect(self) -> None:
        pass

    async def request_reconcile(
        self, kind: str, key: ResourceKey, attempt: int = 0
    ) -> ReconcileRequest:
        """Publish a request for ``kind`` ``key`` on the kind's topic."""
        request = ReconcileRequest(
            kind=kind, namespace=key.namespace, name=key.name, attempt=attempt
        )
        await self.publish(topic_for(kind), request)
        return request

    @abc.abstractmethod
    async def publish(self, topic: str, message: ReconcileRequest) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    def subscribe(
        self, topic: str, lifespan: Optional[float] = None
    ) -> AsyncIterator[Tuple[RawMessageT, ReconcileRequest]]:
        """Yield raw transport message and request pairs.

        Args:
            topic: The topic to consume
            lifespan: Seconds after which to stop consuming. If None, runs indefinitely.
        """
        raise NotImplementedError

    @abc.abstractmethod
    async def ack(self, raw_message: RawMessageT) -> None:
        """Mark a message handed out by ``subscribe`` as handled."""
        raise NotImplementedError

    async def nack(self, raw_message: RawMessageT, requeue: bool = True) -> None:
        """Negatively acknowledge (default to ack if unsupported)."""
        await self.ack(raw_message)
