"""Application logic: dependency trees, status computation and templates."""

from .pipelinerun import apply_pipeline_run
from .rundeps import WorkflowRunDeps, configure_workflow_run_deps
from .runstatus import ExecutionSnapshot, compute_run_status, configure_workflow_run
from .tenantdeps import TenantDeps, configure_tenant_deps, configure_tenant_status
from .triggerdeps import (
    WebhookTriggerDeps,
    configure_webhook_trigger_deps,
    configure_webhook_trigger_status,
)

__all__ = [
    "ExecutionSnapshot",
    "TenantDeps",
    "WebhookTriggerDeps",
    "WorkflowRunDeps",
    "apply_pipeline_run",
    "compute_run_status",
    "configure_tenant_deps",
    "configure_tenant_status",
    "configure_webhook_trigger_deps",
    "configure_webhook_trigger_status",
    "configure_workflow_run",
    "configure_workflow_run_deps",
]
