"""Task runner utilities."""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING

from .base import Task, TaskResult

if TYPE_CHECKING:  # pragma: no cover
    from ..agents.base import Agent
    from ..agents.registry import AgentRegistry

logger = logging.getLogger(__name__)


class TaskRunner:
    """Executes one task on one agent, keeping registry load balanced."""

    def __init__(self, registry: "AgentRegistry") -> None:
        self.registry = registry

    async def run(self, task: Task, agent: "Agent") -> TaskResult:
        self.registry.increment_load(agent.id)
        start = time.perf_counter()
        try:
            result = await agent.process_task(task)
        except Exception as exc:
            logger.exception("Agent %s raised while running task %s", agent.name, task.id)
            self.registry.mark_failed(agent.id)
            result = TaskResult.failure(
                task.id,
                str(exc) or exc.__class__.__name__,
                agent_id=agent.id,
                execution_time=time.perf_counter() - start,
            )
        finally:
            self.registry.decrement_load(agent.id)
        return result
