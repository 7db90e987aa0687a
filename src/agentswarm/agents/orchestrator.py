"""Task-processing loop: dequeue, select an agent, dispatch, publish the result."""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Set

from ..errors import (
    AgentSwarmError,
    InvalidTransitionError,
    NoAgentAvailableError,
    TaskCancellationError,
    TaskNotFoundError,
    TaskTimeoutError,
    TaskValidationError,
)
from ..tasks.base import Task, TaskPriority, TaskResult, TaskStatus, TaskType
from ..tasks.queue import TaskQueue
from ..tasks.runner import TaskRunner
from .base import Agent, AgentStatus, AgentType
from .registry import AgentRegistry
from .selector import AgentSelector

logger = logging.getLogger(__name__)

TaskListener = Callable[[Task, TaskResult], Any]


@dataclass
class OrchestratorSettings:
    """Runtime parameters for the processing loop."""

    requeue_delay: float = 1.0
    default_wait_timeout: float = 30.0
    max_parallel_tasks: int = 1
    max_queue_size: int = 0

    def __post_init__(self) -> None:
        if self.max_parallel_tasks < 1:
            raise ValueError("max_parallel_tasks must be at least 1")
        if self.requeue_delay < 0 or self.default_wait_timeout <= 0:
            raise ValueError("requeue_delay must be >= 0 and default_wait_timeout > 0")

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "OrchestratorSettings":
        if not data:
            return cls()
        return cls(
            requeue_delay=float(data.get("requeue_delay", 1.0)),
            default_wait_timeout=float(data.get("default_wait_timeout", 30.0)),
            max_parallel_tasks=int(data.get("max_parallel_tasks", 1)),
            max_queue_size=int(data.get("max_queue_size", 0)),
        )


class Orchestrator:
    """Owns the queue, registry and selector for one pool of agents.

    Tasks are processed one at a time by default. ``max_parallel_tasks``
    raises the number of dispatches in flight; agents still only receive
    work while IDLE, so no agent goes over its concurrency limit.
    """

    def __init__(
        self,
        registry: Optional[AgentRegistry] = None,
        selector: Optional[AgentSelector] = None,
        queue: Optional[TaskQueue] = None,
        runner: Optional[TaskRunner] = None,
        settings: Optional[OrchestratorSettings] = None,
    ) -> None:
        self.settings = settings or OrchestratorSettings()
        self.registry = registry or AgentRegistry()
        self.selector = selector or AgentSelector(self.registry)
        self.queue = queue or TaskQueue(self.settings.max_queue_size)
        self.runner = runner or TaskRunner(self.registry)
        self._results: Dict[str, TaskResult] = {}
        self._waiters: Dict[str, List[asyncio.Future]] = {}
        self._listeners: List[TaskListener] = []
        self._slots = asyncio.Semaphore(self.settings.max_parallel_tasks)
        self._loop_task: Optional[asyncio.Task] = None
        self._inflight: Set[asyncio.Task] = set()
        self._closed = False

    # Agents -----------------------------------------------------------------

    def register_agent(self, agent: Agent) -> Agent:
        self.registry.register_agent(agent)
        if self.queue.size:
            self._ensure_processing()
        return agent

    def register_agents(self, agents: Iterable[Agent]) -> None:
        for agent in agents:
            self.register_agent(agent)

    # Submission ---------------------------------------------------------------

    async def submit_task(
        self,
        title: str,
        description: str,
        type: TaskType | str = TaskType.GENERAL,
        priority: TaskPriority | str = TaskPriority.MEDIUM,
        required_capabilities: Optional[Iterable[str]] = None,
        context: Optional[Mapping[str, Any]] = None,
        preferred_agent_type: Optional[str] = None,
        dependencies: Optional[Iterable[str]] = None,
    ) -> str:
        """Validate and enqueue a task; returns its id without waiting for it."""

        task = build_task(
            title,
            description,
            type=type,
            priority=priority,
            required_capabilities=required_capabilities,
            context=context,
            preferred_agent_type=preferred_agent_type,
            dependencies=dependencies,
        )
        return await self.submit(task)

    async def submit(self, task: Task) -> str:
        if self._closed:
            raise AgentSwarmError("Orchestrator has been shut down")
        self.queue.enqueue(task)
        logger.info("Task submitted: %s (%s, %s)", task.title, task.id, task.priority.value)
        self._ensure_processing()
        return task.id

    # Processing loop ----------------------------------------------------------

    def _ensure_processing(self) -> None:
        if self._closed:
            return
        if self._loop_task is None or self._loop_task.done():
            self._loop_task = asyncio.get_running_loop().create_task(self._process_queue())

    @property
    def is_processing(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    async def _process_queue(self) -> None:
        while not self._closed:
            await self._slots.acquire()
            task = self.queue.dequeue()
            if task is None:
                self._slots.release()
                break
            try:
                agent = self.selector.require_agent(task)
            except NoAgentAvailableError:
                self._slots.release()
                self.queue.requeue(task)
                logger.debug("No agent available for task %s, requeued", task.id)
                await asyncio.sleep(self.settings.requeue_delay)
                continue
            except Exception as exc:
                logger.exception("Agent selection failed for task %s", task.id)
                self._slots.release()
                await self._finish(task, TaskResult.failure(task.id, f"Agent selection failed: {exc}"))
                continue

            self.queue.update_status(task.id, TaskStatus.ASSIGNED)
            task.assigned_agent_id = agent.id
            self.registry.update_agent_status(agent.id, AgentStatus.ASSIGNED)
            logger.info("Task %s assigned to %s", task.id, agent.name)
            job = asyncio.get_running_loop().create_task(self._dispatch(task, agent))
            self._inflight.add(job)
            job.add_done_callback(self._inflight.discard)

    async def _dispatch(self, task: Task, agent: Agent) -> None:
        try:
            if task.status is not TaskStatus.ASSIGNED:
                # cancelled between assignment and dispatch
                self._release_agent(agent)
                return
            self.queue.update_status(task.id, TaskStatus.IN_PROGRESS)
            result = await self.runner.run(task, agent)
        except Exception as exc:
            logger.exception("Dispatch of task %s failed", task.id)
            self._release_agent(agent)
            result = TaskResult.failure(task.id, str(exc) or exc.__class__.__name__, agent_id=agent.id)
        finally:
            self._slots.release()
        await self._finish(task, result)

    def _release_agent(self, agent: Agent) -> None:
        if self.registry.current_load(agent.id) == 0 and agent.status is not AgentStatus.IDLE:
            self.registry.update_agent_status(agent.id, AgentStatus.IDLE)

    async def _finish(self, task: Task, result: TaskResult) -> None:
        target = TaskStatus.COMPLETED if result.success else TaskStatus.FAILED
        if not task.status.is_terminal:
            try:
                self.queue.update_status(task.id, target)
            except InvalidTransitionError:
                logger.warning("Task %s could not move to %s from %s", task.id, target.value, task.status.value)
        self._results[task.id] = result
        if result.success:
            logger.info("Task completed: %s (%.2fs)", task.id, result.execution_time)
        else:
            logger.warning("Task failed: %s: %s", task.id, result.error)
        for future in self._waiters.pop(task.id, []):
            if not future.done():
                future.set_result(result)
        for listener in list(self._listeners):
            try:
                outcome = listener(task, result)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception:
                logger.exception("Task listener raised for task %s", task.id)

    # Queries ----------------------------------------------------------------

    def get_task_status(self, task_id: str) -> Optional[Task]:
        return self.queue.get_task(task_id)

    def get_task_result(self, task_id: str) -> Optional[TaskResult]:
        return self._results.get(task_id)

    def list_tasks(self, status: Optional[TaskStatus | str] = None) -> List[Task]:
        tasks = self.queue.pending_tasks() + self.queue.active_tasks() + self.queue.completed_tasks()
        if status is None:
            return tasks
        wanted = TaskStatus(status)
        return [task for task in tasks if task.status is wanted]

    async def wait_for_task(self, task_id: str, timeout: Optional[float] = None) -> TaskResult:
        """Return the task's result, waiting up to ``timeout`` seconds for it."""

        existing = self._results.get(task_id)
        if existing is not None:
            return existing
        if self.queue.get_task(task_id) is None:
            raise TaskNotFoundError(task_id)
        timeout = self.settings.default_wait_timeout if timeout is None else timeout
        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._waiters.setdefault(task_id, []).append(future)
        try:
            return await asyncio.wait_for(future, timeout)
        except asyncio.TimeoutError:
            raise TaskTimeoutError(task_id, timeout) from None
        finally:
            waiters = self._waiters.get(task_id)
            if waiters and future in waiters:
                waiters.remove(future)
                if not waiters:
                    del self._waiters[task_id]

    async def cancel_task(self, task_id: str) -> Task:
        """Cancel a task that has not started running."""

        task = self.queue.get_task(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        if task.status not in (TaskStatus.PENDING, TaskStatus.ASSIGNED):
            raise TaskCancellationError(
                f"Task {task_id} is {task.status.value} and cannot be cancelled"
            )
        self.queue.update_status(task_id, TaskStatus.CANCELLED)
        if task.assigned_agent_id:
            agent = self.registry.get_agent(task.assigned_agent_id)
            if agent is not None:
                self._release_agent(agent)
        logger.info("Task cancelled: %s", task_id)
        await self._finish(
            task, TaskResult.failure(task_id, "Task cancelled", agent_id=task.assigned_agent_id)
        )
        return task

    # Listeners --------------------------------------------------------------

    def add_listener(self, listener: TaskListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: TaskListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    # Lifecycle --------------------------------------------------------------

    async def join(self) -> None:
        """Wait until the queue is drained and every dispatch has finished."""

        while True:
            if self._loop_task is not None and not self._loop_task.done():
                await asyncio.wait({self._loop_task})
            if self._inflight:
                await asyncio.wait(set(self._inflight))
                continue
            if self.queue.size and not self._closed:
                self._ensure_processing()
                continue
            return

    async def shutdown(self) -> None:
        self._closed = True
        if self._loop_task is not None and not self._loop_task.done():
            self._loop_task.cancel()
            await asyncio.wait({self._loop_task})
        if self._inflight:
            await asyncio.wait(set(self._inflight))
        for task_id, futures in list(self._waiters.items()):
            for future in futures:
                if not future.done():
                    future.set_exception(AgentSwarmError(f"Orchestrator shut down before task {task_id} finished"))
        self._waiters.clear()
        logger.info("Orchestrator shut down")

    def system_stats(self) -> Dict[str, Any]:
        results = list(self._results.values())
        successful = sum(1 for result in results if result.success)
        return {
            "agents": self.registry.system_stats(),
            "queue": self.queue.stats(),
            "results": {
                "total": len(results),
                "successful": successful,
                "failed": len(results) - successful,
            },
            "processing": self.is_processing,
        }


def build_task(
    title: str,
    description: str,
    *,
    type: TaskType | str = TaskType.GENERAL,
    priority: TaskPriority | str = TaskPriority.MEDIUM,
    required_capabilities: Optional[Iterable[str]] = None,
    context: Optional[Mapping[str, Any]] = None,
    preferred_agent_type: Optional[str] = None,
    dependencies: Optional[Iterable[str]] = None,
) -> Task:
    """Build a task from caller input, raising TaskValidationError on bad values."""

    if not isinstance(title, str) or not title.strip():
        raise TaskValidationError("Task title must be a non-empty string")
    if not isinstance(description, str):
        raise TaskValidationError("Task description must be a string")
    try:
        task_type = TaskType(type)
    except ValueError:
        raise TaskValidationError(f"Unknown task type: {type}") from None
    try:
        task_priority = TaskPriority(priority)
    except ValueError:
        raise TaskValidationError(f"Unknown task priority: {priority}") from None
    capabilities = list(required_capabilities or [])
    if not all(isinstance(item, str) and item for item in capabilities):
        raise TaskValidationError("Required capabilities must be non-empty strings")
    if preferred_agent_type is not None:
        try:
            preferred_agent_type = AgentType(preferred_agent_type).value
        except ValueError:
            raise TaskValidationError(f"Unknown agent type: {preferred_agent_type}") from None
    if context is not None and not isinstance(context, Mapping):
        raise TaskValidationError("Task context must be a mapping")
    return Task(
        title=title.strip(),
        description=description,
        type=task_type,
        priority=task_priority,
        required_capabilities=capabilities,
        context=dict(context or {}),
        dependencies=list(dependencies or []),
        preferred_agent_type=preferred_agent_type,
    )
