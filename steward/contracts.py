"""Messages exchanged between the change feed and the reconcile loops."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from pydantic import BaseModel, Field

from .apis import ResourceKey


def topic_for(kind: str) -> str:
    """Return the transport topic carrying reconcile requests for ``kind``."""
    return f"reconcile.{kind.lower()}"


class ReconcileRequest(BaseModel):
    """Asks a controller to reconcile one object."""

    message_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    kind: str
    namespace: str = ""
    name: str
    attempt: int = 0
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def key(self) -> ResourceKey:
        return ResourceKey(self.namespace, self.name)

    def retried(self) -> "ReconcileRequest":
        """Return a copy of this request for the next delivery attempt."""
        return ReconcileRequest(
            kind=self.kind,
            namespace=self.namespace,
            name=self.name,
            attempt=self.attempt + 1,
        )

    def to_json(self) -> str:
        """Serialize message to JSON."""
        return self.model_dump_json()

    @classmethod
    def from_json(cls, data: str) -> "ReconcileRequest":
        """Deserialize message from JSON."""
        return cls.model_validate_json(data)
