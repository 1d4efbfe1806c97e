"""Well-known labels, annotations, finalizer names and condition reasons."""

API_GROUP = "steward.dev"
API_VERSION = f"{API_GROUP}/v1beta1"

MANAGED_BY_LABEL = "app.kubernetes.io/managed-by"
MANAGED_BY_VALUE = "steward"

DEPENDENCY_OF_ANNOTATION = f"controller.{API_GROUP}/dependency-of"

TENANT_WORKLOAD_LABEL = f"{API_GROUP}/tenant-workload"
TENANT_NAME_LABEL = f"{API_GROUP}/tenant"
WORKFLOW_RUN_LABEL = f"{API_GROUP}/workflow-run"
WEBHOOK_TRIGGER_LABEL = f"{API_GROUP}/webhook-trigger"
NETWORK_POLICY_ROLE_LABEL = f"{API_GROUP}/network-policy"

TENANT_FINALIZER = f"tenant.finalizers.controller.{API_GROUP}"
WEBHOOK_TRIGGER_FINALIZER = f"webhooktrigger.finalizers.controller.{API_GROUP}"
WORKFLOW_RUN_FINALIZER = f"workflowrun.finalizers.controller.{API_GROUP}"

# Key in a run's workflow state that requests cancellation.
CANCEL_STATE_KEY = "cancel"

# Reasons reported by the execution engine on its Succeeded condition.
REASON_CONDITION_CHECK_FAILED = "ConditionCheckFailed"
REASON_PIPELINE_RUN_TIMEOUT = "PipelineRunTimeout"
REASON_TASK_RUN_TIMEOUT = "TaskRunTimeout"
TIMEOUT_REASONS = frozenset({REASON_PIPELINE_RUN_TIMEOUT, REASON_TASK_RUN_TIMEOUT})

PIPELINE_RUN_CANCELLED = "PipelineRunCancelled"

# Condition types written on tenants and triggers.
CONDITION_NAMESPACE_READY = "NamespaceReady"
CONDITION_EVENT_SINK_READY = "EventSinkReady"
CONDITION_READY = "Ready"

SUCCEEDED_CONDITION = "Succeeded"
