"""Request pipeline - intent routing and workflow orchestration."""

from __future__ import annotations

from zweek.pipeline.orchestrator import (
    GenerationTask,
    Orchestrator,
    PipelineCallbacks,
    build_orchestrator,
    open_history_store,
    view_callbacks,
)
from zweek.pipeline.router import (
    Intent,
    IntentClassifier,
    RoutingDecision,
    WorkflowType,
    get_workflow,
)

__all__ = [
    "GenerationTask",
    "Intent",
    "IntentClassifier",
    "Orchestrator",
    "PipelineCallbacks",
    "RoutingDecision",
    "WorkflowType",
    "build_orchestrator",
    "get_workflow",
    "open_history_store",
    "view_callbacks",
]
