import asyncio

import pytest

from agentswarm.agents.base import (
    Agent,
    AgentCapabilities,
    AgentType,
    TaskAnalysis,
    ValidationResult,
)
from agentswarm.agents.orchestrator import OrchestratorSettings
from agentswarm.errors import ExecutionFailure
from agentswarm.tasks.base import TaskType


class ScriptedBehavior:
    """Behavior whose outcome is decided by the task title."""

    def __init__(self, *, fail_titles=(), reject_titles=(), delay=0.0):
        self.fail_titles = set(fail_titles)
        self.reject_titles = set(reject_titles)
        self.delay = delay
        self.seen = []

    async def analyze(self, agent, task):
        self.seen.append(task.title)
        return TaskAnalysis(required_steps=["do it"])

    async def act(self, agent, analysis, task):
        if self.delay:
            await asyncio.sleep(self.delay)
        if task.title in self.fail_titles:
            raise ExecutionFailure(f"{task.title} exploded")
        return {"output": f"{agent.name} did {task.title}", "context": dict(task.context)}

    async def validate(self, agent, result, task):
        if task.title in self.reject_titles:
            return ValidationResult(is_valid=False, reason="output incomplete")
        return ValidationResult(is_valid=True)


@pytest.fixture
def scripted():
    return ScriptedBehavior


@pytest.fixture
def make_agent():
    def factory(
        name="dev",
        agent_type=AgentType.DEVELOPER,
        *,
        skills=(),
        task_types=tuple(TaskType),
        max_tasks=1,
        behavior=None,
        router=None,
    ):
        return Agent(
            name=name,
            agent_type=agent_type,
            capabilities=AgentCapabilities(
                skills=list(skills),
                supported_task_types=list(task_types),
                max_concurrent_tasks=max_tasks,
            ),
            router=router,
            behavior=behavior or ScriptedBehavior(),
        )

    return factory


@pytest.fixture
def settings():
    return OrchestratorSettings(requeue_delay=0.01, default_wait_timeout=2.0)
