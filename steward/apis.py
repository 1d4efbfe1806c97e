"""Resource models for the objects steward reconciles and the objects it manages."""

from __future__ import annotations

import hashlib
from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar, Dict, List, NamedTuple, Optional, Type

from pydantic import BaseModel, Field

from . import constants


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ResourceKey(NamedTuple):
    """Namespace and name of an object. Cluster-scoped objects use ``""``."""

    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}" if self.namespace else self.name


# ----------------------------------------------------------------------
# Object metadata


class OwnerReference(BaseModel):
    api_version: str
    kind: str
    name: str
    uid: str
    controller: bool = False
    block_owner_deletion: bool = False


class ObjectMeta(BaseModel):
    """Identity, labels and lifecycle bookkeeping shared by every object."""

    name: str = ""
    namespace: str = ""
    uid: str = ""
    resource_version: str = ""
    generation: int = 0
    creation_timestamp: Optional[datetime] = None
    deletion_timestamp: Optional[datetime] = None
    labels: Dict[str, str] = Field(default_factory=dict)
    annotations: Dict[str, str] = Field(default_factory=dict)
    owner_references: List[OwnerReference] = Field(default_factory=list)
    finalizers: List[str] = Field(default_factory=list)


class KubeObject(BaseModel):
    """Base class for every stored object kind."""

    API_VERSION: ClassVar[str] = "v1"
    KIND: ClassVar[str] = ""
    NAMESPACED: ClassVar[bool] = True

    metadata: ObjectMeta = Field(default_factory=ObjectMeta)

    @classmethod
    def new(cls, key: ResourceKey) -> "KubeObject":
        """Return an empty object addressed by ``key``."""
        return cls(metadata=ObjectMeta(namespace=key.namespace, name=key.name))

    @classmethod
    def has_status(cls) -> bool:
        return "status" in cls.model_fields

    @property
    def key(self) -> ResourceKey:
        return ResourceKey(self.metadata.namespace, self.metadata.name)

    @property
    def api_version(self) -> str:
        return self.API_VERSION

    @property
    def kind(self) -> str:
        return self.KIND

    def is_deleting(self) -> bool:
        return self.metadata.deletion_timestamp is not None

    def __str__(self) -> str:
        return f"{self.KIND} {self.key}"


# ----------------------------------------------------------------------
# Conditions


class ConditionStatus(str, Enum):
    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"


class Condition(BaseModel):
    type: str
    status: ConditionStatus = ConditionStatus.UNKNOWN
    reason: str = ""
    message: str = ""
    last_transition_time: Optional[datetime] = None


def get_condition(conditions: List[Condition], type_: str) -> Optional[Condition]:
    for cond in conditions:
        if cond.type == type_:
            return cond
    return None


# ----------------------------------------------------------------------
# Core kinds


class Namespace(KubeObject):
    KIND: ClassVar[str] = "Namespace"
    NAMESPACED: ClassVar[bool] = False


class ConfigMap(KubeObject):
    KIND: ClassVar[str] = "ConfigMap"

    data: Dict[str, str] = Field(default_factory=dict)


class Secret(KubeObject):
    KIND: ClassVar[str] = "Secret"

    type: str = "Opaque"
    data: Dict[str, str] = Field(default_factory=dict)


class ServiceAccount(KubeObject):
    KIND: ClassVar[str] = "ServiceAccount"

    image_pull_secrets: List[str] = Field(default_factory=list)
    automount_service_account_token: Optional[bool] = None


class PolicyRule(BaseModel):
    api_groups: List[str] = Field(default_factory=list)
    resources: List[str] = Field(default_factory=list)
    resource_names: List[str] = Field(default_factory=list)
    verbs: List[str] = Field(default_factory=list)


class Role(KubeObject):
    API_VERSION: ClassVar[str] = "rbac.authorization.k8s.io/v1"
    KIND: ClassVar[str] = "Role"

    rules: List[PolicyRule] = Field(default_factory=list)


class RoleRef(BaseModel):
    kind: str = "Role"
    name: str = ""


class Subject(BaseModel):
    kind: str = "ServiceAccount"
    name: str
    namespace: str = ""


class RoleBinding(KubeObject):
    API_VERSION: ClassVar[str] = "rbac.authorization.k8s.io/v1"
    KIND: ClassVar[str] = "RoleBinding"

    role_ref: RoleRef = Field(default_factory=RoleRef)
    subjects: List[Subject] = Field(default_factory=list)


class NetworkPolicySpec(BaseModel):
    pod_selector: Dict[str, str] = Field(default_factory=dict)
    policy_types: List[str] = Field(default_factory=list)
    ingress: List[Dict[str, Any]] = Field(default_factory=list)
    egress: List[Dict[str, Any]] = Field(default_factory=list)


class NetworkPolicy(KubeObject):
    API_VERSION: ClassVar[str] = "networking.k8s.io/v1"
    KIND: ClassVar[str] = "NetworkPolicy"

    spec: NetworkPolicySpec = Field(default_factory=NetworkPolicySpec)


class LimitRangeItem(BaseModel):
    type: str = "Container"
    default: Dict[str, str] = Field(default_factory=dict)
    default_request: Dict[str, str] = Field(default_factory=dict)
    max: Dict[str, str] = Field(default_factory=dict)


class LimitRangeSpec(BaseModel):
    limits: List[LimitRangeItem] = Field(default_factory=list)


class LimitRange(KubeObject):
    KIND: ClassVar[str] = "LimitRange"

    spec: LimitRangeSpec = Field(default_factory=LimitRangeSpec)


# ----------------------------------------------------------------------
# Tenant


class SecretKeySelector(BaseModel):
    name: str
    key: str


class NamespaceTemplate(BaseModel):
    metadata: ObjectMeta = Field(default_factory=ObjectMeta)


class APITriggerEventSink(BaseModel):
    url: Optional[str] = None
    token: Optional[str] = None
    token_from: Optional[SecretKeySelector] = None


class TriggerEventSink(BaseModel):
    api: Optional[APITriggerEventSink] = None


class TenantSpec(BaseModel):
    namespace_template: NamespaceTemplate = Field(default_factory=NamespaceTemplate)
    trigger_event_sink: TriggerEventSink = Field(default_factory=TriggerEventSink)


class TenantStatus(BaseModel):
    observed_generation: int = 0
    namespace: Optional[str] = None
    conditions: List[Condition] = Field(default_factory=list)


class Tenant(KubeObject):
    API_VERSION: ClassVar[str] = constants.API_VERSION
    KIND: ClassVar[str] = "Tenant"

    spec: TenantSpec = Field(default_factory=TenantSpec)
    status: TenantStatus = Field(default_factory=TenantStatus)


# ----------------------------------------------------------------------
# WebhookTrigger


class WebhookTriggerSpec(BaseModel):
    tenant_ref: str = ""
    name: str = ""
    image: str = ""
    input: List[str] = Field(default_factory=list)
    env: Dict[str, Any] = Field(default_factory=dict)
    spec: Dict[str, Any] = Field(default_factory=dict)


class WebhookTriggerStatus(BaseModel):
    observed_generation: int = 0
    namespace: Optional[str] = None
    url: Optional[str] = None
    conditions: List[Condition] = Field(default_factory=list)


class WebhookTrigger(KubeObject):
    API_VERSION: ClassVar[str] = constants.API_VERSION
    KIND: ClassVar[str] = "WebhookTrigger"

    spec: WebhookTriggerSpec = Field(default_factory=WebhookTriggerSpec)
    status: WebhookTriggerStatus = Field(default_factory=WebhookTriggerStatus)


# ----------------------------------------------------------------------
# WorkflowRun


class RunStatus(str, Enum):
    """Status of a run or of one of its steps."""

    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    SUCCESS = "success"
    FAILURE = "failure"
    CANCELLED = "cancelled"
    SKIPPED = "skipped"
    TIMED_OUT = "timed-out"

    @property
    def is_terminal(self) -> bool:
        return self not in (RunStatus.PENDING, RunStatus.IN_PROGRESS)


class StepStatusSummary(BaseModel):
    name: str
    status: RunStatus = RunStatus.PENDING
    start_time: Optional[datetime] = None
    completion_time: Optional[datetime] = None
    log_key: Optional[str] = None


class Step(BaseModel):
    name: str
    depends_on: List[str] = Field(default_factory=list)
    when: Optional[Any] = None
    image: str = ""
    input: List[str] = Field(default_factory=list)
    env: Dict[str, Any] = Field(default_factory=dict)
    spec: Dict[str, Any] = Field(default_factory=dict)


class Workflow(BaseModel):
    name: str = ""
    parameters: Dict[str, Any] = Field(default_factory=dict)
    steps: List[Step] = Field(default_factory=list)


class WorkflowState(BaseModel):
    workflow: Dict[str, Any] = Field(default_factory=dict)
    steps: Dict[str, Dict[str, Any]] = Field(default_factory=dict)


class WorkflowRunSpec(BaseModel):
    name: str = ""
    workflow: Workflow = Field(default_factory=Workflow)
    parameters: Dict[str, Any] = Field(default_factory=dict)
    state: WorkflowState = Field(default_factory=WorkflowState)


class WorkflowRunStatus(BaseModel):
    observed_generation: int = 0
    status: Optional[RunStatus] = None
    start_time: Optional[datetime] = None
    completion_time: Optional[datetime] = None
    steps: Dict[str, StepStatusSummary] = Field(default_factory=dict)
    conditions: Dict[str, StepStatusSummary] = Field(default_factory=dict)


class WorkflowRun(KubeObject):
    API_VERSION: ClassVar[str] = constants.API_VERSION
    KIND: ClassVar[str] = "WorkflowRun"

    spec: WorkflowRunSpec = Field(default_factory=WorkflowRunSpec)
    status: WorkflowRunStatus = Field(default_factory=WorkflowRunStatus)

    def is_cancelled(self) -> bool:
        return self.spec.state.workflow.get(constants.CANCEL_STATE_KEY) is True


def step_hash(run_name: str, step_name: str) -> str:
    """Stable identifier of a step within a run, used to name execution tasks."""
    digest = hashlib.sha1(f"{run_name}\x00{step_name}".encode("utf-8"))
    return digest.hexdigest()


# ----------------------------------------------------------------------
# PipelineRun: the execution request consumed by the execution engine


class PipelineTask(BaseModel):
    name: str
    step_name: str
    image: str = ""
    input: List[str] = Field(default_factory=list)
    env: Dict[str, Any] = Field(default_factory=dict)
    run_after: List[str] = Field(default_factory=list)
    conditions: List[str] = Field(default_factory=list)


class PipelineRunSpec(BaseModel):
    service_account_name: str = ""
    status: Optional[str] = None
    params: Dict[str, Any] = Field(default_factory=dict)
    tasks: List[PipelineTask] = Field(default_factory=list)


class ConditionCheckStatus(BaseModel):
    condition_name: str
    condition: Optional[Condition] = None
    start_time: Optional[datetime] = None
    completion_time: Optional[datetime] = None


class TaskRunStatus(BaseModel):
    pipeline_task_name: str
    pod_name: str = ""
    condition: Optional[Condition] = None
    start_time: Optional[datetime] = None
    completion_time: Optional[datetime] = None
    condition_checks: Dict[str, ConditionCheckStatus] = Field(default_factory=dict)


class PipelineRunStatus(BaseModel):
    conditions: List[Condition] = Field(default_factory=list)
    start_time: Optional[datetime] = None
    completion_time: Optional[datetime] = None
    task_runs: Dict[str, TaskRunStatus] = Field(default_factory=dict)

    def succeeded(self) -> Optional[Condition]:
        return get_condition(self.conditions, constants.SUCCEEDED_CONDITION)


class PipelineRun(KubeObject):
    API_VERSION: ClassVar[str] = "tekton.dev/v1beta1"
    KIND: ClassVar[str] = "PipelineRun"

    spec: PipelineRunSpec = Field(default_factory=PipelineRunSpec)
    status: PipelineRunStatus = Field(default_factory=PipelineRunStatus)


KINDS: Dict[str, Type[KubeObject]] = {
    cls.KIND: cls
    for cls in (
        Namespace,
        ConfigMap,
        Secret,
        ServiceAccount,
        Role,
        RoleBinding,
        NetworkPolicy,
        LimitRange,
        Tenant,
        WebhookTrigger,
        WorkflowRun,
        PipelineRun,
    )
}
