"""Steward: declarative reconciliation for tenants, triggers and workflow runs."""

from .apis import ResourceKey, RunStatus, Tenant, WebhookTrigger, WorkflowRun
from .app.runstatus import ExecutionSnapshot, compute_run_status
from .config import StewardConfig, load_config
from .controller import Controller, ControllerManager, build_manager
from .store import InMemoryObjectStore, get_store
from .transports import InMemoryTransport, get_transport

__version__ = "0.1.0"
__all__ = [
    "Controller",
    "ControllerManager",
    "ExecutionSnapshot",
    "InMemoryObjectStore",
    "InMemoryTransport",
    "ResourceKey",
    "RunStatus",
    "StewardConfig",
    "Tenant",
    "WebhookTrigger",
    "WorkflowRun",
    "build_manager",
    "compute_run_status",
    "get_store",
    "get_transport",
    "load_config",
]
