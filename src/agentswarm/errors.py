"""Exception hierarchy shared across the dispatch engine."""

from __future__ import annotations

from typing import Dict


class AgentSwarmError(Exception):
    """Base class for every error raised by the package."""


class ValidationError(AgentSwarmError):
    """Malformed input rejected before it reaches the queue."""


class TaskValidationError(ValidationError):
    """A task request is missing fields or carries invalid values."""


class WorkflowValidationError(ValidationError):
    """A workflow template is malformed (duplicate ids, unknown deps, cycles)."""


class QueueFullError(ValidationError):
    """The task queue reached its configured capacity."""


class NotFoundError(AgentSwarmError):
    """A referenced entity does not exist."""


class TaskNotFoundError(NotFoundError):
    def __init__(self, task_id: str) -> None:
        self.task_id = task_id
        super().__init__(f"Task {task_id} not found")


class WorkflowNotFoundError(NotFoundError):
    def __init__(self, workflow_id: str, kind: str = "template") -> None:
        self.workflow_id = workflow_id
        self.kind = kind
        super().__init__(f"Workflow {kind} {workflow_id} not found")


class NoAgentAvailableError(AgentSwarmError):
    """No registered agent can take a task right now."""


class AgentCapacityError(AgentSwarmError):
    """An agent is already running its maximum number of tasks."""


class AgentCreationError(AgentSwarmError):
    """An agent-creation request could not be resolved to a template."""


class ExecutionFailure(AgentSwarmError):
    """An agent failed during analyze, act or validate."""


class ProviderError(AgentSwarmError):
    """A capability provider failed to serve a request."""


class ProviderNotFoundError(ProviderError):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Provider {name} not registered")


class AllProvidersFailedError(ProviderError):
    """Every eligible provider failed or had an open circuit."""

    def __init__(self, errors: Dict[str, str]) -> None:
        self.errors = dict(errors)
        if errors:
            details = "; ".join(f"{name}: {reason}" for name, reason in errors.items())
        else:
            details = "no providers available"
        super().__init__(f"All providers failed ({details})")


class WorkflowStepFailure(AgentSwarmError):
    """A workflow step used up all of its attempts."""

    def __init__(self, step_id: str, attempts: int, reason: str) -> None:
        self.step_id = step_id
        self.attempts = attempts
        self.reason = reason
        super().__init__(f"Step {step_id} failed after {attempts} attempt(s): {reason}")


class TaskTimeoutError(AgentSwarmError, TimeoutError):
    def __init__(self, task_id: str, timeout: float) -> None:
        self.task_id = task_id
        self.timeout = timeout
        super().__init__(f"Task {task_id} timeout after {timeout}s")


class WorkflowTimeoutError(TaskTimeoutError):
    """A workflow execution was still running when the caller stopped waiting."""

    def __init__(self, execution_id: str, timeout: float) -> None:
        super().__init__(execution_id, timeout)
        self.execution_id = execution_id
        self.args = (f"Workflow execution {execution_id} still running after {timeout}s",)


class TaskCancellationError(AgentSwarmError):
    """Cancellation was requested for a task that is already running or finished."""


class InvalidTransitionError(AgentSwarmError):
    """A task status change would move the task backwards."""
