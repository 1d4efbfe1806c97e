"""Reconcilers for the primary kinds."""

from .base import Reconciler
from .tenant import TenantReconciler
from .trigger import WebhookTriggerReconciler
from .workflowrun import WorkflowRunReconciler

__all__ = [
    "Reconciler",
    "TenantReconciler",
    "WebhookTriggerReconciler",
    "WorkflowRunReconciler",
]
