"""Object lifecycle: handles, composite loaders, ownership and finalizers."""

from .finalizer import finalize
from .handle import (
    Deleter,
    IgnoreNilLoader,
    IgnoreNilOwnable,
    IgnoreNilPersister,
    Loader,
    Loaders,
    Ownable,
    Persister,
    RequiredLoader,
    ResourceHandle,
    StatusHandle,
)

__all__ = [
    "Deleter",
    "IgnoreNilLoader",
    "IgnoreNilOwnable",
    "IgnoreNilPersister",
    "Loader",
    "Loaders",
    "Ownable",
    "Persister",
    "RequiredLoader",
    "ResourceHandle",
    "StatusHandle",
    "finalize",
]
