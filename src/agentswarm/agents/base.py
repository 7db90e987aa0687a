"""Core agent type: capability set, metrics and the analyze/act/validate sequence."""

from __future__ import annotations

import logging
import time
import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Deque, Dict, List, Mapping, Optional, Protocol

from ..errors import ExecutionFailure
from ..llm.provider import GenerateOptions
from ..llm.router import ProviderRouter
from ..memory.simple import ConversationBufferMemory
from ..tasks.base import Task, TaskResult, TaskType, utcnow

logger = logging.getLogger(__name__)


class AgentType(str, Enum):
    DEVELOPER = "DEVELOPER"
    QA = "QA"
    DEVOPS = "DEVOPS"
    PRODUCT_MANAGER = "PRODUCT_MANAGER"
    DESIGNER = "DESIGNER"
    MARKETING = "MARKETING"
    TECH_WRITER = "TECH_WRITER"
    RESEARCH = "RESEARCH"
    SEO = "SEO"
    LEAD_GENERATION = "LEAD_GENERATION"
    AI_ML = "AI_ML"
    MENTOR = "MENTOR"


class AgentStatus(str, Enum):
    INITIALIZED = "INITIALIZED"
    IDLE = "IDLE"
    ASSIGNED = "ASSIGNED"
    THINKING = "THINKING"
    EXECUTING = "EXECUTING"
    VALIDATING = "VALIDATING"
    COMPLETED = "COMPLETED"
    ERROR = "ERROR"


@dataclass
class AgentCapabilities:
    skills: List[str] = field(default_factory=list)
    max_concurrent_tasks: int = 1
    specializations: List[str] = field(default_factory=list)
    supported_task_types: List[TaskType] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.max_concurrent_tasks < 1:
            raise ValueError("max_concurrent_tasks must be at least 1")
        self.supported_task_types = [TaskType(item) for item in self.supported_task_types]

    def supports(self, task_type: TaskType) -> bool:
        return task_type in self.supported_task_types

    def to_dict(self) -> Dict[str, Any]:
        return {
            "skills": list(self.skills),
            "max_concurrent_tasks": self.max_concurrent_tasks,
            "specializations": list(self.specializations),
            "supported_task_types": [item.value for item in self.supported_task_types],
        }


RECENT_WINDOW = 10
STRENGTH_RATE = 0.8
IMPROVEMENT_RATE = 0.5


@dataclass
class PerformanceMetrics:
    """Lifetime counters plus the outcomes of the last few tasks."""

    total_tasks: int = 0
    successful_tasks: int = 0
    failed_tasks: int = 0
    average_completion_time: float = 0.0
    success_rate: float = 0.0
    task_type_metrics: Dict[str, int] = field(default_factory=dict)
    task_type_successes: Dict[str, int] = field(default_factory=dict)
    recent_outcomes: Deque[bool] = field(default_factory=lambda: deque(maxlen=RECENT_WINDOW))
    last_updated: Optional[datetime] = None

    def record(self, success: bool, execution_time: float, task_type: TaskType) -> None:
        self.total_tasks += 1
        if success:
            self.successful_tasks += 1
        else:
            self.failed_tasks += 1
        total_time = self.average_completion_time * (self.total_tasks - 1) + execution_time
        self.average_completion_time = total_time / self.total_tasks
        self.success_rate = self.successful_tasks / self.total_tasks
        key = TaskType(task_type).value
        self.task_type_metrics[key] = self.task_type_metrics.get(key, 0) + 1
        if success:
            self.task_type_successes[key] = self.task_type_successes.get(key, 0) + 1
        self.recent_outcomes.append(success)
        self.last_updated = utcnow()

    def handled(self, task_type: TaskType) -> int:
        return self.task_type_metrics.get(TaskType(task_type).value, 0)

    @property
    def recent_performance(self) -> float:
        if not self.recent_outcomes:
            return 0.0
        return sum(self.recent_outcomes) / len(self.recent_outcomes)

    def insights(self) -> Dict[str, Any]:
        """Summarize where the agent does well and where it struggles.

        A task type is a strength above an 80% success rate and needs
        improvement below 50%. Preferred types are the most handled ones.
        """

        strengths: List[str] = []
        improvements: List[str] = []
        for key, total in self.task_type_metrics.items():
            rate = self.task_type_successes.get(key, 0) / total
            if rate > STRENGTH_RATE:
                strengths.append(key)
            elif rate < IMPROVEMENT_RATE:
                improvements.append(key)
        preferred = sorted(self.task_type_metrics, key=lambda key: -self.task_type_metrics[key])
        return {
            "total_tasks": self.total_tasks,
            "success_rate": self.success_rate,
            "recent_performance": self.recent_performance,
            "recent_window": len(self.recent_outcomes),
            "strength_areas": strengths,
            "improvement_areas": improvements,
            "preferred_task_types": preferred[:3],
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_tasks": self.total_tasks,
            "successful_tasks": self.successful_tasks,
            "failed_tasks": self.failed_tasks,
            "average_completion_time": self.average_completion_time,
            "success_rate": self.success_rate,
            "recent_performance": self.recent_performance,
            "task_type_metrics": dict(self.task_type_metrics),
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
        }


COMPLEXITY_LEVELS = ("low", "medium", "high")


@dataclass
class TaskAnalysis:
    """Structured plan produced by the analyze phase."""

    estimated_complexity: str = "medium"
    required_steps: List[str] = field(default_factory=list)
    potential_challenges: List[str] = field(default_factory=list)
    recommended_approach: str = ""
    additional_info: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Any, *, raw: str = "") -> "TaskAnalysis":
        """Build an analysis from untrusted model output, defaulting bad fields."""

        if not isinstance(payload, Mapping):
            return cls(required_steps=["Complete the task"], recommended_approach=raw)
        complexity = str(payload.get("complexity", payload.get("estimated_complexity", "medium"))).lower()
        if complexity not in COMPLEXITY_LEVELS:
            complexity = "medium"
        return cls(
            estimated_complexity=complexity,
            required_steps=_string_list(payload.get("steps", payload.get("required_steps"))),
            potential_challenges=_string_list(payload.get("challenges", payload.get("potential_challenges"))),
            recommended_approach=str(payload.get("approach", payload.get("recommended_approach", "")) or ""),
            additional_info=dict(payload),
        )


@dataclass
class ValidationResult:
    is_valid: bool
    reason: Optional[str] = None
    suggestions: List[str] = field(default_factory=list)


def _string_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, (list, tuple)):
        return [str(item) for item in value if item is not None]
    return [str(value)]


class AgentBehavior(Protocol):
    """Role strategy injected into an :class:`Agent`."""

    async def analyze(self, agent: "Agent", task: Task) -> TaskAnalysis:  # pragma: no cover - interface
        """Produce a plan for the task."""

    async def act(self, agent: "Agent", analysis: TaskAnalysis, task: Task) -> Any:  # pragma: no cover - interface
        """Produce the work product."""

    async def validate(self, agent: "Agent", result: Any, task: Task) -> ValidationResult:  # pragma: no cover - interface
        """Accept or reject the work product."""


class Agent:
    """A unit of work capacity that runs tasks through an injected behavior."""

    def __init__(
        self,
        name: str,
        agent_type: AgentType | str,
        capabilities: AgentCapabilities,
        router: Optional[ProviderRouter],
        behavior: AgentBehavior,
        *,
        description: str = "",
        preferred_provider: Optional[str] = None,
        memory: ConversationBufferMemory | None = None,
        agent_id: Optional[str] = None,
    ) -> None:
        self.id = agent_id or str(uuid.uuid4())
        self.name = name
        self.type = AgentType(agent_type)
        self.description = description
        self.capabilities = capabilities
        self.router = router
        self.behavior = behavior
        self.preferred_provider = preferred_provider
        self.memory = memory or ConversationBufferMemory()
        self.status = AgentStatus.INITIALIZED
        self.metrics = PerformanceMetrics()

    def update_status(self, status: AgentStatus) -> None:
        self.status = AgentStatus(status)

    def can_handle(self, task: Task) -> bool:
        """True when the task asks for no skills or for at least one this agent has."""

        required = task.required_capabilities
        return not required or any(cap in self.capabilities.skills for cap in required)

    async def process_task(self, task: Task) -> TaskResult:
        """Run analyze, act and validate; failures become a failed result."""

        start = time.perf_counter()
        try:
            self.update_status(AgentStatus.THINKING)
            analysis = await self.behavior.analyze(self, task)
            self.update_status(AgentStatus.EXECUTING)
            output = await self.behavior.act(self, analysis, task)
            self.update_status(AgentStatus.VALIDATING)
            validation = await self.behavior.validate(self, output, task)
            if not validation.is_valid:
                raise ExecutionFailure(f"Validation failed: {validation.reason or 'rejected'}")
        except Exception as exc:
            elapsed = time.perf_counter() - start
            self.update_status(AgentStatus.ERROR)
            self.metrics.record(False, elapsed, task.type)
            message = str(exc) or exc.__class__.__name__
            self.memory.add("error", f"{task.title}: {message}", {"task_id": task.id})
            logger.info("Agent %s failed task %s: %s", self.name, task.id, message)
            return TaskResult.failure(task.id, message, agent_id=self.id, execution_time=elapsed)

        elapsed = time.perf_counter() - start
        self.update_status(AgentStatus.COMPLETED)
        self.metrics.record(True, elapsed, task.type)
        self.memory.add("assistant", f"{task.title}: completed", {"task_id": task.id})
        return TaskResult(
            task_id=task.id,
            success=True,
            agent_id=self.id,
            execution_time=elapsed,
            result=output,
        )

    async def generate(self, prompt: str, options: Optional[GenerateOptions] = None) -> str:
        """Send a role-framed prompt through the provider router."""

        if self.router is None:
            raise ExecutionFailure(f"Agent {self.name} has no provider router")
        options = options or GenerateOptions()
        if self.preferred_provider and options.preferred_provider is None:
            options = options.merged(preferred_provider=self.preferred_provider)
        return await self.router.generate(self.build_prompt(prompt), options)

    def build_prompt(self, user_prompt: str) -> str:
        recent = self.memory.render()
        return "\n\n".join(
            [
                f"You are {self.name}, a specialized {self.type.value} agent.",
                f"Your capabilities:\n{', '.join(self.capabilities.skills) or 'general'}",
                f"Current context:\n{recent or 'No context available'}",
                f"Task:\n{user_prompt.strip()}",
                "Provide a detailed, actionable response.",
            ]
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type.value,
            "description": self.description,
            "status": self.status.value,
            "capabilities": self.capabilities.to_dict(),
            "metrics": self.metrics.to_dict(),
        }

    def __repr__(self) -> str:
        return f"Agent(name={self.name!r}, type={self.type.value}, status={self.status.value})"
