"""Executes workflow templates step by step on top of the orchestrator."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional

from ..agents.orchestrator import Orchestrator
from ..errors import (
    AgentSwarmError,
    TaskCancellationError,
    TaskNotFoundError,
    TaskTimeoutError,
    WorkflowNotFoundError,
    WorkflowStepFailure,
    WorkflowTimeoutError,
)
from ..tasks.base import TaskPriority, utcnow
from .base import (
    ExecutionStatus,
    StepStatus,
    WorkflowExecution,
    WorkflowStep,
    WorkflowStepExecution,
    WorkflowTemplate,
    execution_order,
)

logger = logging.getLogger(__name__)

INPUT_MARKER = "input"
RESULT_PREFIX = "from_"
PREVIOUS_STEP = "previous_step"


@dataclass
class WorkflowSettings:
    max_attempts: int = 3
    retry_delay: float = 1.0
    step_timeout: float = 300.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.retry_delay < 0 or self.step_timeout <= 0:
            raise ValueError("retry_delay must be >= 0 and step_timeout > 0")

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "WorkflowSettings":
        if not data:
            return cls()
        return cls(
            max_attempts=int(data.get("max_attempts", 3)),
            retry_delay=float(data.get("retry_delay", 1.0)),
            step_timeout=float(data.get("step_timeout", 300.0)),
        )


class WorkflowEngine:
    """Runs workflow templates as a sequence of orchestrator tasks.

    Templates are validated and ordered when registered. Each execution runs
    in its own asyncio task; a step is submitted only after every step it
    depends on has completed, and a failing step is retried with a fresh
    task until ``max_attempts`` is reached.
    """

    def __init__(
        self,
        orchestrator: Orchestrator,
        settings: Optional[WorkflowSettings] = None,
        templates: Iterable[WorkflowTemplate] = (),
    ) -> None:
        self.orchestrator = orchestrator
        self.settings = settings or WorkflowSettings()
        self._templates: Dict[str, WorkflowTemplate] = {}
        self._orders: Dict[str, List[WorkflowStep]] = {}
        self._executions: Dict[str, WorkflowExecution] = {}
        self._runs: Dict[str, asyncio.Task] = {}
        for template in templates:
            self.register_template(template)

    # Templates --------------------------------------------------------------

    def register_template(self, template: WorkflowTemplate) -> WorkflowTemplate:
        self._orders[template.id] = execution_order(template)
        self._templates[template.id] = template
        logger.debug("Registered workflow template %s (%d steps)", template.id, len(template.steps))
        return template

    def get_template(self, template_id: str) -> Optional[WorkflowTemplate]:
        return self._templates.get(template_id)

    def list_templates(self, category: Optional[str] = None) -> List[WorkflowTemplate]:
        templates = list(self._templates.values())
        if category:
            return [template for template in templates if template.category == category]
        return templates

    def delete_template(self, template_id: str) -> bool:
        self._orders.pop(template_id, None)
        return self._templates.pop(template_id, None) is not None

    # Executions -------------------------------------------------------------

    async def execute_workflow(
        self, template_id: str, inputs: Optional[Mapping[str, Any]] = None
    ) -> str:
        """Start a workflow in the background and return the execution id."""

        template = self._templates.get(template_id)
        if template is None:
            raise WorkflowNotFoundError(template_id)
        order = self._orders[template_id]
        execution = WorkflowExecution(
            template_id=template_id,
            steps=[WorkflowStepExecution(step_id=step.id) for step in order],
            inputs=dict(inputs or {}),
        )
        self._executions[execution.id] = execution
        run = asyncio.get_running_loop().create_task(self._run(execution, order))
        self._runs[execution.id] = run
        run.add_done_callback(lambda _: self._runs.pop(execution.id, None))
        logger.info("Workflow %s started (execution %s)", template_id, execution.id)
        return execution.id

    async def _run(self, execution: WorkflowExecution, order: List[WorkflowStep]) -> None:
        execution.status = ExecutionStatus.RUNNING
        previous: Optional[str] = None
        try:
            for position, step in enumerate(order):
                execution.current_step = position
                result = await self._run_step(execution, step, execution.steps[position], previous)
                execution.results[step.id] = result
                previous = step.id
        except WorkflowStepFailure as exc:
            self._fail(execution, str(exc))
            return
        except asyncio.CancelledError:
            self._fail(execution, "Workflow execution cancelled")
            raise
        except Exception as exc:
            logger.exception("Workflow execution %s crashed", execution.id)
            self._fail(execution, str(exc) or exc.__class__.__name__)
            return
        execution.current_step = execution.total_steps
        execution.status = ExecutionStatus.COMPLETED
        execution.completed_at = utcnow()
        logger.info("Workflow %s completed (execution %s)", execution.template_id, execution.id)

    def _fail(self, execution: WorkflowExecution, error: str) -> None:
        execution.status = ExecutionStatus.FAILED
        execution.completed_at = utcnow()
        execution.error = error
        logger.error("Workflow %s failed (execution %s): %s", execution.template_id, execution.id, error)

    async def _run_step(
        self,
        execution: WorkflowExecution,
        step: WorkflowStep,
        state: WorkflowStepExecution,
        previous: Optional[str],
    ) -> Any:
        last_error = "unknown error"
        for attempt in range(1, self.settings.max_attempts + 1):
            state.attempts = attempt
            unmet = self._unmet_dependencies(execution, step)
            if unmet:
                last_error = f"Dependencies not met for step {step.id}: {', '.join(unmet)}"
            else:
                state.status = StepStatus.RUNNING
                state.started_at = utcnow()
                outcome = await self._attempt(execution, step, state, previous)
                if outcome is None:
                    return state.result
                last_error = outcome

            state.status = StepStatus.FAILED
            state.error = last_error
            logger.warning(
                "Workflow step %s attempt %d/%d failed: %s",
                step.id,
                attempt,
                self.settings.max_attempts,
                last_error,
            )
            if attempt < self.settings.max_attempts:
                await asyncio.sleep(self.settings.retry_delay)
                state.status = StepStatus.PENDING
                state.error = None
        raise WorkflowStepFailure(step.id, self.settings.max_attempts, last_error)

    @staticmethod
    def _unmet_dependencies(execution: WorkflowExecution, step: WorkflowStep) -> List[str]:
        unmet = []
        for dep in step.dependencies:
            dep_state = execution.step(dep)
            if dep_state is None or dep_state.status is not StepStatus.COMPLETED:
                unmet.append(dep)
        return unmet

    async def _attempt(
        self,
        execution: WorkflowExecution,
        step: WorkflowStep,
        state: WorkflowStepExecution,
        previous: Optional[str],
    ) -> Optional[str]:
        """Submit one task for the step. Returns an error string, or None on success."""

        inputs = self.resolve_inputs(step, execution, previous)
        try:
            task_id = await self.orchestrator.submit_task(
                title=step.name,
                description=f"{step.name}: {json.dumps(inputs, default=str)}",
                type=step.task_type,
                priority=TaskPriority.HIGH,
                required_capabilities=step.required_capabilities,
                context={
                    "workflow_execution_id": execution.id,
                    "workflow_step_id": step.id,
                    "inputs": inputs,
                    "expected_outputs": list(step.expected_outputs),
                },
                preferred_agent_type=step.agent_type.value,
            )
        except AgentSwarmError as exc:
            return str(exc)
        state.task_id = task_id
        logger.info("Workflow step %s submitted as task %s (attempt %d)", step.id, task_id, state.attempts)
        try:
            result = await self.orchestrator.wait_for_task(task_id, self.settings.step_timeout)
        except TaskTimeoutError as exc:
            await self._abandon(task_id)
            return str(exc)
        state.agent_id = result.agent_id
        if not result.success:
            return f"Step {step.id} failed: {result.error}"
        state.status = StepStatus.COMPLETED
        state.result = result.result
        state.error = None
        state.completed_at = utcnow()
        return None

    async def _abandon(self, task_id: str) -> None:
        try:
            await self.orchestrator.cancel_task(task_id)
        except (TaskCancellationError, TaskNotFoundError):
            logger.debug("Timed out task %s is already running or finished", task_id)

    def resolve_inputs(
        self,
        step: WorkflowStep,
        execution: WorkflowExecution,
        previous: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Bind a step's input expressions against the execution state.

        ``"input"`` reads the caller's input of the same key, ``"from_<step>"``
        reads that step's result and ``"from_previous_step"`` reads the step
        that ran just before this one. Other values pass through unchanged.
        """

        resolved: Dict[str, Any] = {}
        for key, value in step.inputs.items():
            if value == INPUT_MARKER:
                resolved[key] = execution.inputs.get(key)
            elif isinstance(value, str) and value.startswith(RESULT_PREFIX):
                source: Optional[str] = value[len(RESULT_PREFIX) :]
                if source == PREVIOUS_STEP and execution.step(PREVIOUS_STEP) is None:
                    source = previous
                resolved[key] = execution.results.get(source) if source else None
            else:
                resolved[key] = value
        return resolved

    # Queries ----------------------------------------------------------------

    def get_execution(self, execution_id: str) -> Optional[WorkflowExecution]:
        return self._executions.get(execution_id)

    def list_executions(self, template_id: Optional[str] = None) -> List[WorkflowExecution]:
        executions = list(self._executions.values())
        if template_id:
            return [item for item in executions if item.template_id == template_id]
        return executions

    def get_workflow_status(self, execution_id: str) -> Optional[Dict[str, Any]]:
        execution = self._executions.get(execution_id)
        if execution is None:
            return None
        status = execution.to_dict()
        template = self._templates.get(execution.template_id)
        status["template_name"] = template.name if template else None
        return status

    async def wait_for_execution(
        self, execution_id: str, timeout: Optional[float] = None
    ) -> WorkflowExecution:
        execution = self._executions.get(execution_id)
        if execution is None:
            raise WorkflowNotFoundError(execution_id, kind="execution")
        run = self._runs.get(execution_id)
        if run is not None:
            done, _ = await asyncio.wait({run}, timeout=timeout)
            if not done:
                raise WorkflowTimeoutError(execution_id, timeout)
        return execution

    async def shutdown(self) -> None:
        runs = list(self._runs.values())
        for run in runs:
            run.cancel()
        if runs:
            await asyncio.wait(runs)
