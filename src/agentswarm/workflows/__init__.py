"""Workflow templates and the engine that executes them."""

from .base import (
    ExecutionStatus,
    StepStatus,
    WorkflowExecution,
    WorkflowStep,
    WorkflowStepExecution,
    WorkflowTemplate,
    execution_order,
)
from .builtin import builtin_templates
from .engine import WorkflowEngine, WorkflowSettings

__all__ = [
    "ExecutionStatus",
    "StepStatus",
    "WorkflowEngine",
    "WorkflowExecution",
    "WorkflowSettings",
    "WorkflowStep",
    "WorkflowStepExecution",
    "WorkflowTemplate",
    "builtin_templates",
    "execution_order",
]
