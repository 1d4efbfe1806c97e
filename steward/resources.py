"""Typed handles for every kind steward loads or writes."""

from __future__ import annotations

import json
from typing import Any, Dict, Optional

from . import apis, constants
from .apis import ResourceKey
from .lifecycle.handle import ResourceHandle, StatusHandle


class NamespaceHandle(ResourceHandle[apis.Namespace]):
    resource_class = apis.Namespace

    def __init__(self, name: str, obj: Optional[apis.Namespace] = None) -> None:
        super().__init__(ResourceKey("", name), obj)


class ConfigMapHandle(ResourceHandle[apis.ConfigMap]):
    resource_class = apis.ConfigMap

    def set_json(self, key: str, value: Any) -> None:
        self.object.data[key] = json.dumps(value, sort_keys=True)

    def get_json(self, key: str) -> Any:
        raw = self.object.data.get(key)
        return json.loads(raw) if raw is not None else None


class SecretHandle(ResourceHandle[apis.Secret]):
    resource_class = apis.Secret


class ImagePullSecretHandle(SecretHandle):
    def new_object(self) -> apis.Secret:
        obj = super().new_object()
        obj.type = "kubernetes.io/dockerconfigjson"
        return obj


class ServiceAccountHandle(ResourceHandle[apis.ServiceAccount]):
    resource_class = apis.ServiceAccount


class RoleHandle(ResourceHandle[apis.Role]):
    resource_class = apis.Role


class RoleBindingHandle(ResourceHandle[apis.RoleBinding]):
    resource_class = apis.RoleBinding


class NetworkPolicyHandle(ResourceHandle[apis.NetworkPolicy]):
    resource_class = apis.NetworkPolicy


class LimitRangeHandle(ResourceHandle[apis.LimitRange]):
    resource_class = apis.LimitRange


class PipelineRunHandle(StatusHandle[apis.PipelineRun]):
    resource_class = apis.PipelineRun


class TenantHandle(StatusHandle[apis.Tenant]):
    resource_class = apis.Tenant

    @property
    def managed(self) -> bool:
        """A tenant whose namespace template names a namespace owns that namespace."""
        return bool(self.object.spec.namespace_template.metadata.name)


class WebhookTriggerHandle(StatusHandle[apis.WebhookTrigger]):
    resource_class = apis.WebhookTrigger


class WorkflowRunHandle(StatusHandle[apis.WorkflowRun]):
    resource_class = apis.WorkflowRun

    def is_cancelled(self) -> bool:
        return self.object.is_cancelled()

    def pod_selector(self) -> Dict[str, str]:
        return {constants.WORKFLOW_RUN_LABEL: self.key.name}
