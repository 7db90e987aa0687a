"""Task dataclasses used by the orchestrator."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_iterable(value: Any) -> Iterable[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple, set)):
        return value
    return [value]


class TaskType(str, Enum):
    CODE_GENERATION = "CODE_GENERATION"
    CODE_REVIEW = "CODE_REVIEW"
    TESTING = "TESTING"
    DEPLOYMENT = "DEPLOYMENT"
    REQUIREMENTS_ANALYSIS = "REQUIREMENTS_ANALYSIS"
    DESIGN = "DESIGN"
    DOCUMENTATION = "DOCUMENTATION"
    RESEARCH = "RESEARCH"
    SEO_OPTIMIZATION = "SEO_OPTIMIZATION"
    LEAD_GENERATION = "LEAD_GENERATION"
    CONTENT_MARKETING = "CONTENT_MARKETING"
    GENERAL = "GENERAL"


class TaskPriority(str, Enum):
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


# Drain order of the priority queue.
PRIORITY_ORDER = (
    TaskPriority.CRITICAL,
    TaskPriority.HIGH,
    TaskPriority.MEDIUM,
    TaskPriority.LOW,
)


class TaskStatus(str, Enum):
    PENDING = "PENDING"
    ASSIGNED = "ASSIGNED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES: FrozenSet[TaskStatus] = frozenset(
    {TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.CANCELLED}
)

_ALLOWED_TRANSITIONS: Dict[TaskStatus, FrozenSet[TaskStatus]] = {
    TaskStatus.PENDING: frozenset(
        {TaskStatus.ASSIGNED, TaskStatus.FAILED, TaskStatus.CANCELLED}
    ),
    TaskStatus.ASSIGNED: frozenset(
        {TaskStatus.IN_PROGRESS, TaskStatus.FAILED, TaskStatus.CANCELLED}
    ),
    TaskStatus.IN_PROGRESS: frozenset({TaskStatus.COMPLETED, TaskStatus.FAILED}),
    TaskStatus.COMPLETED: frozenset(),
    TaskStatus.FAILED: frozenset(),
    TaskStatus.CANCELLED: frozenset(),
}


def can_transition(current: TaskStatus, target: TaskStatus) -> bool:
    """Return True if ``current -> target`` moves the task forward."""

    return target in _ALLOWED_TRANSITIONS[current]


def new_task_id() -> str:
    return str(uuid.uuid4())


@dataclass
class Task:
    """A single unit of work waiting for, or assigned to, an agent."""

    title: str
    description: str
    type: TaskType = TaskType.GENERAL
    priority: TaskPriority = TaskPriority.MEDIUM
    required_capabilities: List[str] = field(default_factory=list)
    context: Dict[str, Any] = field(default_factory=dict)
    dependencies: List[str] = field(default_factory=list)
    preferred_agent_type: Optional[str] = None
    id: str = field(default_factory=new_task_id)
    status: TaskStatus = TaskStatus.PENDING
    assigned_agent_id: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    completed_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        self.type = TaskType(self.type)
        self.priority = TaskPriority(self.priority)
        self.required_capabilities = list(dict.fromkeys(self.required_capabilities))
        self.dependencies = list(dict.fromkeys(self.dependencies))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "type": self.type.value,
            "priority": self.priority.value,
            "status": self.status.value,
            "required_capabilities": list(self.required_capabilities),
            "dependencies": list(self.dependencies),
            "context": dict(self.context),
            "preferred_agent_type": self.preferred_agent_type,
            "assigned_agent_id": self.assigned_agent_id,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


@dataclass(frozen=True)
class TaskResult:
    """Result of one task attempt."""

    task_id: str
    success: bool
    agent_id: Optional[str]
    execution_time: float
    result: Any = None
    error: Optional[str] = None
    completed_at: datetime = field(default_factory=utcnow)
    metadata: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def failure(
        cls,
        task_id: str,
        error: str,
        *,
        agent_id: Optional[str] = None,
        execution_time: float = 0.0,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> "TaskResult":
        return cls(
            task_id=task_id,
            success=False,
            agent_id=agent_id,
            execution_time=execution_time,
            error=error,
            metadata=dict(metadata or {}),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "task_id": self.task_id,
            "success": self.success,
            "result": self.result,
            "error": self.error,
            "execution_time": self.execution_time,
            "agent_id": self.agent_id,
            "completed_at": self.completed_at.isoformat(),
            "metadata": dict(self.metadata),
        }
