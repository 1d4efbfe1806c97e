"""Exceptions raised by stores, loaders and ownership helpers."""

from __future__ import annotations

from typing import Optional


class StewardError(Exception):
    """Base class for all steward errors."""


class StoreError(StewardError):
    """A backing store rejected an operation on a single object."""

    reason = "store error"

    def __init__(self, kind: str, key: object, message: Optional[str] = None) -> None:
        self.kind = kind
        self.key = key
        super().__init__(message or f"{kind} {key}: {self.reason}")


class NotFoundError(StoreError):
    reason = "not found"


class AlreadyExistsError(StoreError):
    reason = "already exists"


class ConflictError(StoreError):
    """The object was modified since it was read."""

    reason = "conflict: the object has been modified"


class RequiredError(StewardError):
    """A dependency that must already exist could not be loaded."""

    def __init__(self, key: object) -> None:
        self.key = key
        super().__init__(f"required object {key} does not exist")


class OwnerInOtherNamespaceError(StewardError):
    """An owner reference was requested across namespaces."""

    def __init__(self, owner: object, target: object) -> None:
        self.owner = owner
        self.target = target
        super().__init__(
            f"owner {owner} cannot own {target}: objects are in different namespaces"
        )
