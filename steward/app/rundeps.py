"""Objects a workflow run needs before its steps can execute."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from .. import constants
from ..apis import ResourceKey, WorkflowRun, step_hash
from ..lifecycle import (
    IgnoreNilLoader,
    IgnoreNilOwnable,
    IgnoreNilPersister,
    Loaders,
    Ownable,
    Persister,
    RequiredLoader,
    ResourceHandle,
)
from ..lifecycle import ownership
from ..resources import (
    ConfigMapHandle,
    ImagePullSecretHandle,
    LimitRangeHandle,
    NamespaceHandle,
    NetworkPolicyHandle,
    RoleBindingHandle,
    RoleHandle,
    ServiceAccountHandle,
    WorkflowRunHandle,
)
from ..store.base import ObjectStore
from .templates import (
    configure_image_pull_secret,
    configure_limit_range,
    configure_metadata_api_role,
    configure_metadata_api_role_binding,
    configure_metadata_api_service_account,
    configure_system_service_account,
    configure_untrusted_service_account,
    configure_workflow_run_network_policy,
)

logger = logging.getLogger(__name__)


def merged_parameters(run: WorkflowRun) -> Dict[str, Any]:
    """Workflow parameter defaults overlaid with the run's own parameters."""
    params = dict(run.spec.workflow.parameters)
    params.update(run.spec.parameters)
    return params


def step_config_key(run_name: str, step_name: str, suffix: str) -> str:
    return f"steps.{step_hash(run_name, step_name)}.{suffix}"


class WorkflowRunDeps:
    """Dependency tree of a workflow run.

    All objects live in the run's namespace and are owned by the run. The
    system image pull secret is copied from ``image_pull_secret`` when one is
    configured; that source secret must exist.
    """

    def __init__(
        self,
        run: WorkflowRunHandle,
        *,
        image_pull_secret: Optional[ResourceKey] = None,
    ) -> None:
        self.run = run
        key = run.key

        self.namespace = NamespaceHandle(key.namespace)
        self.limit_range = LimitRangeHandle(key)
        self.network_policy = NetworkPolicyHandle(key)
        self.immutable_config_map = ConfigMapHandle(ownership.suffix_object_key(key, "immutable"))
        self.mutable_config_map = ConfigMapHandle(ownership.suffix_object_key(key, "mutable"))
        self.metadata_api_service_account = ServiceAccountHandle(
            ownership.suffix_object_key(key, "metadata-api")
        )
        self.metadata_api_role = RoleHandle(ownership.suffix_object_key(key, "metadata-api"))
        self.metadata_api_role_binding = RoleBindingHandle(
            ownership.suffix_object_key(key, "metadata-api")
        )
        self.pipeline_service_account = ServiceAccountHandle(
            ownership.suffix_object_key(key, "pipeline")
        )
        self.system_service_account = ServiceAccountHandle(
            ownership.suffix_object_key(key, "system")
        )

        self.source_system_image_pull_secret: Optional[ImagePullSecretHandle] = None
        self.target_system_image_pull_secret: Optional[ImagePullSecretHandle] = None
        if image_pull_secret is not None:
            self.source_system_image_pull_secret = ImagePullSecretHandle(image_pull_secret)
            self.target_system_image_pull_secret = ImagePullSecretHandle(
                ownership.suffix_object_key(key, "system")
            )

    def owned(self) -> List[ResourceHandle]:
        """Handles created for the run, in persist order."""
        return [
            self.limit_range,
            self.network_policy,
            self.immutable_config_map,
            self.mutable_config_map,
            self.metadata_api_service_account,
            self.metadata_api_role,
            self.metadata_api_role_binding,
            self.pipeline_service_account,
        ]

    async def load(self, store: ObjectStore) -> bool:
        return await Loaders(
            [
                RequiredLoader(self.namespace),
                *self.owned(),
                RequiredLoader(IgnoreNilLoader(self.source_system_image_pull_secret)),
                IgnoreNilLoader(self.target_system_image_pull_secret),
                self.system_service_account,
            ]
        ).load(store)

    async def persist(self, store: ObjectStore) -> None:
        persisters: List[Persister] = [
            *self.owned(),
            IgnoreNilPersister(self.target_system_image_pull_secret),
            self.system_service_account,
        ]
        for persister in persisters:
            await persister.persist(store)

    async def delete(self, store: ObjectStore) -> bool:
        handles: List[Optional[ResourceHandle]] = [
            *self.owned(),
            self.target_system_image_pull_secret,
            self.system_service_account,
        ]
        for handle in reversed(handles):
            if handle is None or not handle.object.metadata.uid:
                continue
            if not ownership.is_dependency_of(handle.object, self.run.object):
                logger.info(f"Leaving {handle.object} alone: not owned by {self.run.object}")
                continue
            await handle.delete(store)
        return True


def _configure_immutable_config_map(cm: ConfigMapHandle, run: WorkflowRun) -> None:
    cm.object.data = {}
    cm.set_json("parameters", merged_parameters(run))
    name = run.metadata.name
    for step in run.spec.workflow.steps:
        cm.set_json(step_config_key(name, step.name, "spec"), step.spec)
        if step.when is not None:
            cm.set_json(step_config_key(name, step.name, "condition"), step.when)


def _configure_mutable_config_map(cm: ConfigMapHandle, run: WorkflowRun) -> None:
    name = run.metadata.name
    known = {step.name for step in run.spec.workflow.steps}
    for step_name, state in run.spec.state.steps.items():
        if step_name not in known:
            logger.warning(f"Ignoring state for unknown step {step_name} of {run}")
            continue
        for state_name, value in state.items():
            key = step_config_key(name, step_name, f"state.{state_name}")
            # Steps write their state back here, so never overwrite it.
            if key not in cm.object.data:
                cm.set_json(key, value)


def configure_workflow_run_deps(deps: WorkflowRunDeps) -> None:
    run = deps.run.object

    ownables: List[Ownable] = [
        *deps.owned(),
        IgnoreNilOwnable(deps.target_system_image_pull_secret),
        deps.system_service_account,
    ]
    for ownable in ownables:
        deps.run.own(ownable)

    for handle in (
        deps.immutable_config_map,
        deps.mutable_config_map,
        deps.metadata_api_service_account,
        deps.metadata_api_role,
        deps.pipeline_service_account,
        deps.system_service_account,
    ):
        handle.label_annotate_from(run)
        ownership.label(handle.object, constants.WORKFLOW_RUN_LABEL, run.metadata.name)

    configure_limit_range(deps.limit_range)
    configure_workflow_run_network_policy(deps.network_policy, deps.run.pod_selector())
    _configure_immutable_config_map(deps.immutable_config_map, run)
    _configure_mutable_config_map(deps.mutable_config_map, run)

    configure_metadata_api_service_account(deps.metadata_api_service_account)
    configure_metadata_api_role(
        deps.metadata_api_role, deps.immutable_config_map, deps.mutable_config_map
    )
    configure_metadata_api_role_binding(
        deps.metadata_api_role_binding,
        deps.metadata_api_service_account,
        deps.metadata_api_role,
    )
    configure_untrusted_service_account(deps.pipeline_service_account)

    if deps.target_system_image_pull_secret is not None:
        configure_image_pull_secret(
            deps.target_system_image_pull_secret, deps.source_system_image_pull_secret
        )
    configure_system_service_account(
        deps.system_service_account, deps.target_system_image_pull_secret
    )
