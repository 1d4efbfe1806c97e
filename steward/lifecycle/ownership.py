"""Ownership, dependency-of records, labels and finalizers.

These helpers only mutate in-memory objects; persisting the result is up to
the caller.
"""

from __future__ import annotations

import json
import logging
from typing import Optional

from pydantic import BaseModel, ValidationError

from .. import constants
from ..apis import KubeObject, ObjectMeta, OwnerReference, ResourceKey
from ..errors import OwnerInOtherNamespaceError

logger = logging.getLogger(__name__)


class DependencyOf(BaseModel):
    """Record naming the object another object was created for.

    Unlike an owner reference it may point across namespaces.
    """

    api_version: str
    kind: str
    namespace: str = ""
    name: str
    uid: str


def owner_reference(owner: KubeObject, controller: bool = True) -> OwnerReference:
    if not owner.metadata.uid:
        raise ValueError(f"{owner} has not been persisted and cannot own objects")
    return OwnerReference(
        api_version=owner.api_version,
        kind=owner.kind,
        name=owner.metadata.name,
        uid=owner.metadata.uid,
        controller=controller,
        block_owner_deletion=controller,
    )


def _same_owner(a: OwnerReference, b: OwnerReference) -> bool:
    return (
        a.api_version.split("/")[0] == b.api_version.split("/")[0]
        and a.kind == b.kind
        and a.name == b.name
        and a.uid == b.uid
    )


def own(target: KubeObject, owner: KubeObject) -> None:
    """Make ``owner`` the controlling owner of ``target``."""
    if target.metadata.namespace != owner.metadata.namespace:
        raise OwnerInOtherNamespaceError(owner, target)

    ref = owner_reference(owner)
    label(target, constants.MANAGED_BY_LABEL, constants.MANAGED_BY_VALUE)

    refs = target.metadata.owner_references
    for existing in refs:
        if _same_owner(existing, ref):
            existing.controller = True
            existing.block_owner_deletion = True
            ref = existing
            break
    else:
        refs.append(ref)

    for existing in refs:
        if existing is not ref and existing.controller:
            logger.warning(
                f"{target} was controlled by {existing.kind} {existing.name}; "
                f"{owner} takes control"
            )
            existing.controller = False


def set_dependency_of(target: KubeObject, owner: KubeObject) -> None:
    """Record on ``target`` that it exists on behalf of ``owner``."""
    if not owner.metadata.uid:
        raise ValueError(f"{owner} has not been persisted and cannot own objects")
    record = DependencyOf(
        api_version=owner.api_version,
        kind=owner.kind,
        namespace=owner.metadata.namespace,
        name=owner.metadata.name,
        uid=owner.metadata.uid,
    )
    annotate(
        target,
        constants.DEPENDENCY_OF_ANNOTATION,
        json.dumps(record.model_dump(), sort_keys=True),
    )


def dependency_of(target: KubeObject) -> Optional[DependencyOf]:
    """Return the dependency-of record of ``target``, if any.

    Raises ValueError when the record is present but unreadable.
    """
    raw = target.metadata.annotations.get(constants.DEPENDENCY_OF_ANNOTATION)
    if raw is None:
        return None
    try:
        return DependencyOf.model_validate_json(raw)
    except ValidationError as e:
        raise ValueError(
            f"malformed {constants.DEPENDENCY_OF_ANNOTATION} annotation on {target}"
        ) from e


def is_dependency_of(target: KubeObject, owner: KubeObject) -> bool:
    """Return True if ``target`` was created for exactly this ``owner``.

    Checked before deleting any object found by a derived name, so that an
    unrelated object that happens to share the name is left alone.
    """
    if not owner.metadata.uid:
        return False

    record = dependency_of(target)
    if record is not None:
        return (
            record.kind == owner.kind
            and record.api_version == owner.api_version
            and record.namespace == owner.metadata.namespace
            and record.name == owner.metadata.name
            and record.uid == owner.metadata.uid
        )

    for ref in target.metadata.owner_references:
        if (
            ref.kind == owner.kind
            and ref.api_version == owner.api_version
            and ref.uid == owner.metadata.uid
        ):
            return True
    return False


# ----------------------------------------------------------------------
# Labels and annotations


def annotate(target: KubeObject, key: str, value: str) -> bool:
    if target.metadata.annotations.get(key) == value:
        return False
    target.metadata.annotations[key] = value
    return True


def label(target: KubeObject, key: str, value: str) -> bool:
    if target.metadata.labels.get(key) == value:
        return False
    target.metadata.labels[key] = value
    return True


def label_annotate_from(target: KubeObject, source: ObjectMeta) -> None:
    """Copy all labels and annotations of ``source`` onto ``target``."""
    for key, value in source.labels.items():
        label(target, key, value)
    for key, value in source.annotations.items():
        annotate(target, key, value)


def copy_labels_and_annotations(target: KubeObject, source: KubeObject) -> None:
    label_annotate_from(target, source.metadata)


# ----------------------------------------------------------------------
# Finalizers


def add_finalizer(target: KubeObject, name: str) -> bool:
    if name in target.metadata.finalizers:
        return False
    target.metadata.finalizers.append(name)
    return True


def remove_finalizer(target: KubeObject, name: str) -> bool:
    if name not in target.metadata.finalizers:
        return False
    target.metadata.finalizers = [f for f in target.metadata.finalizers if f != name]
    return True


def has_finalizer(target: KubeObject, name: str) -> bool:
    return name in target.metadata.finalizers


def suffix_object_key(key: ResourceKey, suffix: str) -> ResourceKey:
    return ResourceKey(key.namespace, f"{key.name}-{suffix}")
