"""Interface shared by all reconcilers."""

from __future__ import annotations

from typing import ClassVar, Protocol

from ..apis import ResourceKey


class Reconciler(Protocol):
    """Drives one kind of primary object toward its desired state.

    ``reconcile`` returns True when the key should be looked at again later
    even though nothing failed. Raised errors are requeued by the controller.
    """

    kind: ClassVar[str]

    async def reconcile(self, key: ResourceKey) -> bool:
        ...
