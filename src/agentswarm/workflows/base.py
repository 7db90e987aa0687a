"""Workflow templates, executions and dependency ordering."""

from __future__ import annotations

import heapq
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from ..agents.base import AgentType
from ..errors import WorkflowValidationError
from ..tasks.base import TaskType, ensure_iterable, utcnow

CATEGORIES = ("development", "marketing", "operations", "custom")


class ExecutionStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class StepStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class WorkflowStep:
    """One node of a workflow: a task template bound to an agent type."""

    id: str
    name: str
    agent_type: AgentType
    task_type: TaskType
    dependencies: List[str] = field(default_factory=list)
    inputs: Dict[str, Any] = field(default_factory=dict)
    expected_outputs: List[str] = field(default_factory=list)
    required_capabilities: List[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.agent_type = AgentType(self.agent_type)
        self.task_type = TaskType(self.task_type)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "WorkflowStep":
        missing = [key for key in ("id", "agent_type", "task_type") if key not in data]
        if missing:
            raise WorkflowValidationError(f"Workflow step is missing required keys: {', '.join(missing)}")
        try:
            return cls(
                id=str(data["id"]),
                name=str(data.get("name", data["id"])),
                agent_type=data["agent_type"],
                task_type=data["task_type"],
                dependencies=[str(dep) for dep in ensure_iterable(data.get("dependencies"))],
                inputs=dict(data.get("inputs", {})),
                expected_outputs=[str(item) for item in ensure_iterable(data.get("expected_outputs"))],
                required_capabilities=[str(item) for item in ensure_iterable(data.get("required_capabilities"))],
            )
        except ValueError as exc:
            raise WorkflowValidationError(f"Workflow step '{data['id']}': {exc}") from exc

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "agent_type": self.agent_type.value,
            "task_type": self.task_type.value,
            "dependencies": list(self.dependencies),
            "inputs": dict(self.inputs),
            "expected_outputs": list(self.expected_outputs),
            "required_capabilities": list(self.required_capabilities),
        }


@dataclass
class WorkflowTemplate:
    id: str
    name: str
    steps: List[WorkflowStep]
    description: str = ""
    category: str = "custom"
    required_agent_types: List[AgentType] = field(default_factory=list)
    estimated_duration: Optional[float] = None

    def __post_init__(self) -> None:
        if self.category not in CATEGORIES:
            raise WorkflowValidationError(
                f"Workflow '{self.id}' has unknown category '{self.category}'"
            )
        if not self.required_agent_types:
            seen = dict.fromkeys(step.agent_type for step in self.steps)
            self.required_agent_types = list(seen)
        else:
            self.required_agent_types = [AgentType(item) for item in self.required_agent_types]

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], template_id: Optional[str] = None) -> "WorkflowTemplate":
        template_id = template_id or data.get("id")
        if not template_id:
            raise WorkflowValidationError("Workflow template requires an id")
        steps = data.get("steps")
        if not isinstance(steps, list) or not steps:
            raise WorkflowValidationError(f"Workflow '{template_id}' requires a non-empty steps list")
        try:
            required = [AgentType(item) for item in data.get("required_agent_types", [])]
        except ValueError as exc:
            raise WorkflowValidationError(f"Workflow '{template_id}': {exc}") from exc
        return cls(
            id=str(template_id),
            name=str(data.get("name", template_id)),
            description=str(data.get("description", "")),
            category=str(data.get("category", "custom")),
            steps=[WorkflowStep.from_mapping(item) for item in steps],
            required_agent_types=required,
            estimated_duration=data.get("estimated_duration"),
        )

    def get_step(self, step_id: str) -> Optional[WorkflowStep]:
        for step in self.steps:
            if step.id == step_id:
                return step
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "required_agent_types": [item.value for item in self.required_agent_types],
            "estimated_duration": self.estimated_duration,
            "steps": [step.to_dict() for step in self.steps],
        }


def execution_order(template: WorkflowTemplate) -> List[WorkflowStep]:
    """Return the template's steps in dependency order.

    Kahn's algorithm; among steps that are ready at the same time the one
    declared first runs first, so an already sorted template keeps its order.
    Raises WorkflowValidationError on duplicate ids, unknown dependencies or
    cycles.
    """

    index: Dict[str, int] = {}
    for position, step in enumerate(template.steps):
        if step.id in index:
            raise WorkflowValidationError(f"Workflow '{template.id}' has duplicate step id '{step.id}'")
        index[step.id] = position

    in_degree = [0] * len(template.steps)
    dependents: Dict[str, List[int]] = {step.id: [] for step in template.steps}
    for position, step in enumerate(template.steps):
        for dep in dict.fromkeys(step.dependencies):
            if dep not in index:
                raise WorkflowValidationError(
                    f"Step '{step.id}' in workflow '{template.id}' depends on unknown step '{dep}'"
                )
            if dep == step.id:
                raise WorkflowValidationError(f"Step '{step.id}' depends on itself")
            in_degree[position] += 1
            dependents[dep].append(position)

    ready = [position for position, degree in enumerate(in_degree) if degree == 0]
    heapq.heapify(ready)
    ordered: List[WorkflowStep] = []
    while ready:
        position = heapq.heappop(ready)
        step = template.steps[position]
        ordered.append(step)
        for dependent in dependents[step.id]:
            in_degree[dependent] -= 1
            if in_degree[dependent] == 0:
                heapq.heappush(ready, dependent)

    if len(ordered) != len(template.steps):
        stuck = [step.id for position, step in enumerate(template.steps) if in_degree[position] > 0]
        raise WorkflowValidationError(
            f"Workflow '{template.id}' has a dependency cycle among steps: {', '.join(stuck)}"
        )
    return ordered


@dataclass
class WorkflowStepExecution:
    step_id: str
    status: StepStatus = StepStatus.PENDING
    task_id: Optional[str] = None
    agent_id: Optional[str] = None
    attempts: int = 0
    result: Any = None
    error: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step_id": self.step_id,
            "status": self.status.value,
            "task_id": self.task_id,
            "agent_id": self.agent_id,
            "attempts": self.attempts,
            "result": self.result,
            "error": self.error,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


@dataclass
class WorkflowExecution:
    """Mutable state of one workflow run. Steps are kept in execution order."""

    template_id: str
    steps: List[WorkflowStepExecution]
    inputs: Dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    status: ExecutionStatus = ExecutionStatus.PENDING
    current_step: int = 0
    results: Dict[str, Any] = field(default_factory=dict)
    started_at: datetime = field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    error: Optional[str] = None

    @property
    def total_steps(self) -> int:
        return len(self.steps)

    @property
    def progress(self) -> int:
        if not self.steps:
            return 100
        return round(self.current_step / self.total_steps * 100)

    @property
    def is_finished(self) -> bool:
        return self.status in (ExecutionStatus.COMPLETED, ExecutionStatus.FAILED)

    def step(self, step_id: str) -> Optional[WorkflowStepExecution]:
        for item in self.steps:
            if item.step_id == step_id:
                return item
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "template_id": self.template_id,
            "status": self.status.value,
            "current_step": self.current_step,
            "total_steps": self.total_steps,
            "progress": self.progress,
            "steps": [item.to_dict() for item in self.steps],
            "inputs": dict(self.inputs),
            "results": dict(self.results),
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "error": self.error,
        }
