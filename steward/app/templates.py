"""Desired-state templates for the namespaced objects steward manages."""

from __future__ import annotations

from typing import Dict, List, Optional

from .. import constants
from ..apis import LimitRangeItem, NetworkPolicySpec, PolicyRule, RoleRef, Subject
from ..resources import (
    ConfigMapHandle,
    ImagePullSecretHandle,
    LimitRangeHandle,
    NetworkPolicyHandle,
    RoleBindingHandle,
    RoleHandle,
    ServiceAccountHandle,
)

DENIED_IP_BLOCKS: List[str] = [
    "0.0.0.0/8",
    "10.0.0.0/8",
    "100.64.0.0/10",
    "169.254.0.0/16",
    "172.16.0.0/12",
    "192.0.0.0/24",
    "192.0.2.0/24",
    "192.168.0.0/16",
    "198.18.0.0/15",
    "198.51.100.0/24",
    "203.0.113.0/24",
    "240.0.0.0/4",
]

METADATA_API_PORT = 7000
METADATA_API_POD_LABELS = {
    "app.kubernetes.io/name": "steward",
    "app.kubernetes.io/component": "metadata-api",
}
SYSTEM_NAMESPACE_LABELS = {f"{constants.NETWORK_POLICY_ROLE_LABEL}.system": "true"}
WEBHOOK_GATEWAY_LABELS = {f"{constants.NETWORK_POLICY_ROLE_LABEL}.webhook-gateway": "true"}


# ----------------------------------------------------------------------
# Network policies


def configure_tenant_network_policy(np: NetworkPolicyHandle) -> None:
    # Deny everything; workload policies open what they need.
    np.object.spec = NetworkPolicySpec(policy_types=["Ingress", "Egress"])


def _workload_network_policy(pod_selector: Dict[str, str]) -> NetworkPolicySpec:
    return NetworkPolicySpec(
        pod_selector=dict(pod_selector),
        policy_types=["Ingress", "Egress"],
        ingress=[],
        egress=[
            {"to": [{"ip_block": {"cidr": "0.0.0.0/0", "except": list(DENIED_IP_BLOCKS)}}]},
            {
                "to": [
                    {
                        "namespace_selector": dict(SYSTEM_NAMESPACE_LABELS),
                        "pod_selector": dict(METADATA_API_POD_LABELS),
                    }
                ],
                "ports": [{"protocol": "TCP", "port": METADATA_API_PORT}],
            },
        ],
    )


def configure_workflow_run_network_policy(
    np: NetworkPolicyHandle, pod_selector: Dict[str, str]
) -> None:
    np.object.spec = _workload_network_policy(pod_selector)


def configure_webhook_trigger_network_policy(
    np: NetworkPolicyHandle, pod_selector: Dict[str, str]
) -> None:
    spec = _workload_network_policy(pod_selector)
    spec.ingress.append(
        {
            "from": [
                {
                    "namespace_selector": dict(WEBHOOK_GATEWAY_LABELS),
                    "pod_selector": dict(WEBHOOK_GATEWAY_LABELS),
                }
            ]
        }
    )
    np.object.spec = spec


# ----------------------------------------------------------------------
# Limit ranges


def configure_limit_range(lr: LimitRangeHandle) -> None:
    lr.object.spec.limits = [
        LimitRangeItem(
            type="Container",
            default={"cpu": "750m", "memory": "2Gi"},
            default_request={"cpu": "100m", "memory": "256Mi"},
            max={"cpu": "1", "memory": "3Gi"},
        )
    ]


# ----------------------------------------------------------------------
# Service accounts and access


def configure_metadata_api_service_account(sa: ServiceAccountHandle) -> None:
    sa.object.automount_service_account_token = False


def configure_untrusted_service_account(sa: ServiceAccountHandle) -> None:
    sa.object.automount_service_account_token = False


def configure_system_service_account(
    sa: ServiceAccountHandle, image_pull_secret: Optional[ImagePullSecretHandle] = None
) -> None:
    sa.object.automount_service_account_token = False
    sa.object.image_pull_secrets = [image_pull_secret.name] if image_pull_secret else []


def configure_metadata_api_role(
    role: RoleHandle, immutable: ConfigMapHandle, mutable: ConfigMapHandle
) -> None:
    role.object.rules = [
        PolicyRule(
            api_groups=[""],
            resources=["configmaps"],
            resource_names=[immutable.name],
            verbs=["get"],
        ),
        PolicyRule(
            api_groups=[""],
            resources=["configmaps"],
            resource_names=[mutable.name],
            verbs=["get", "update"],
        ),
    ]


def configure_metadata_api_role_binding(
    rb: RoleBindingHandle, sa: ServiceAccountHandle, role: RoleHandle
) -> None:
    rb.object.role_ref = RoleRef(kind="Role", name=role.name)
    rb.object.subjects = [
        Subject(kind="ServiceAccount", name=sa.name, namespace=sa.namespace)
    ]


def configure_image_pull_secret(
    target: ImagePullSecretHandle, source: ImagePullSecretHandle
) -> None:
    target.object.type = source.object.type
    target.object.data = dict(source.object.data)
