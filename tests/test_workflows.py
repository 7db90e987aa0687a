import pytest

from agentswarm.agents.base import AgentType, TaskAnalysis, ValidationResult
from agentswarm.agents.orchestrator import Orchestrator
from agentswarm.errors import (
    TaskTimeoutError,
    WorkflowNotFoundError,
    WorkflowTimeoutError,
    WorkflowValidationError,
)
from agentswarm.tasks.base import TaskStatus, TaskType
from agentswarm.workflows.base import (
    ExecutionStatus,
    StepStatus,
    WorkflowExecution,
    WorkflowStepExecution,
    WorkflowTemplate,
    execution_order,
)
from agentswarm.workflows.builtin import builtin_templates
from agentswarm.workflows.engine import WorkflowEngine, WorkflowSettings

FAST = WorkflowSettings(max_attempts=3, retry_delay=0.01, step_timeout=2.0)


def _template(steps, template_id="flow"):
    return WorkflowTemplate.from_mapping({"id": template_id, "steps": steps})


def _step(step_id, agent_type="DEVELOPER", task_type="CODE_GENERATION", deps=(), inputs=None):
    return {
        "id": step_id,
        "name": step_id,
        "agent_type": agent_type,
        "task_type": task_type,
        "dependencies": list(deps),
        "inputs": inputs or {},
    }


@pytest.fixture
def orchestrator(settings):
    return Orchestrator(settings=settings)


def test_execution_order_follows_dependencies():
    template = _template([_step("c", deps=["b"]), _step("a"), _step("b", deps=["a"]), _step("d")])

    assert [step.id for step in execution_order(template)] == ["a", "b", "c", "d"]


def test_execution_order_keeps_sorted_templates_unchanged():
    for template in builtin_templates():
        assert execution_order(template) == template.steps


@pytest.mark.parametrize(
    "steps",
    [
        [_step("a", deps=["b"]), _step("b", deps=["a"])],
        [_step("a", deps=["a"])],
        [_step("a", deps=["ghost"])],
        [_step("a"), _step("a")],
    ],
    ids=["cycle", "self", "unknown", "duplicate"],
)
def test_invalid_graphs_are_rejected(steps, orchestrator):
    engine = WorkflowEngine(orchestrator, FAST)
    with pytest.raises(WorkflowValidationError):
        engine.register_template(_template(steps))
    assert engine.list_templates() == []


def test_template_parsing_errors():
    with pytest.raises(WorkflowValidationError):
        WorkflowTemplate.from_mapping({"id": "empty", "steps": []})
    with pytest.raises(WorkflowValidationError):
        _template([{"id": "a", "agent_type": "DEVELOPER"}])
    with pytest.raises(WorkflowValidationError):
        _template([_step("a", agent_type="ASTRONAUT")])
    with pytest.raises(WorkflowValidationError):
        WorkflowTemplate.from_mapping({"id": "x", "category": "gardening", "steps": [_step("a")]})


def test_resolve_inputs(orchestrator):
    engine = WorkflowEngine(orchestrator, FAST)
    template = _template(
        [
            _step("a"),
            _step(
                "b",
                deps=["a"],
                inputs={"brief": "input", "design": "from_a", "prev": "from_previous_step", "tone": "formal"},
            ),
        ]
    )
    execution = WorkflowExecution(
        template_id="flow",
        steps=[WorkflowStepExecution("a"), WorkflowStepExecution("b")],
        inputs={"brief": "a todo app"},
        results={"a": {"output": "design text"}},
    )

    resolved = engine.resolve_inputs(template.get_step("b"), execution, previous="a")

    assert resolved == {
        "brief": "a todo app",
        "design": {"output": "design text"},
        "prev": {"output": "design text"},
        "tone": "formal",
    }


@pytest.mark.asyncio
async def test_workflow_runs_steps_and_binds_inputs(orchestrator, make_agent):
    orchestrator.register_agent(make_agent("dev"))
    orchestrator.register_agent(make_agent("qa", AgentType.QA))
    engine = WorkflowEngine(orchestrator, FAST)
    engine.register_template(
        _template(
            [
                _step("build", inputs={"feature": "input"}),
                _step("check", "QA", "TESTING", deps=["build"], inputs={"code": "from_previous_step"}),
            ]
        )
    )

    execution_id = await engine.execute_workflow("flow", {"feature": "login"})
    execution = await engine.wait_for_execution(execution_id, timeout=5)

    assert execution.status is ExecutionStatus.COMPLETED
    assert execution.current_step == 2
    assert execution.progress == 100
    assert execution.error is None
    assert execution.results["build"]["output"] == "dev did build"
    assert execution.results["build"]["context"]["inputs"] == {"feature": "login"}
    assert execution.results["check"]["output"] == "qa did check"
    assert execution.results["check"]["context"]["inputs"] == {"code": execution.results["build"]}
    assert execution.results["check"]["context"]["workflow_step_id"] == "check"
    assert [step.status for step in execution.steps] == [StepStatus.COMPLETED, StepStatus.COMPLETED]
    assert all(step.attempts == 1 for step in execution.steps)

    status = engine.get_workflow_status(execution_id)
    assert status["template_name"] == "flow"
    assert status["status"] == "completed"
    await orchestrator.shutdown()


@pytest.mark.asyncio
async def test_failing_step_stops_the_workflow_after_retries(orchestrator, make_agent, scripted):
    behavior = scripted(fail_titles=["B"])
    orchestrator.register_agent(make_agent(behavior=behavior))
    engine = WorkflowEngine(orchestrator, FAST)
    engine.register_template(_template([_step("A"), _step("B", deps=["A"]), _step("C", deps=["B"])]))

    execution_id = await engine.execute_workflow("flow")
    execution = await engine.wait_for_execution(execution_id, timeout=5)

    assert execution.status is ExecutionStatus.FAILED
    assert execution.current_step == 1
    assert execution.progress == 33
    assert "A" in execution.results
    assert "B" not in execution.results
    assert "B exploded" in execution.error
    assert behavior.seen.count("B") == FAST.max_attempts
    assert "C" not in behavior.seen
    failed = execution.step("B")
    assert failed.status is StepStatus.FAILED
    assert failed.attempts == FAST.max_attempts
    assert execution.step("C").status is StepStatus.PENDING
    await orchestrator.shutdown()


class FlakyBehavior:
    def __init__(self, failures):
        self.failures = failures
        self.calls = 0

    async def analyze(self, agent, task):
        return TaskAnalysis()

    async def act(self, agent, analysis, task):
        self.calls += 1
        if self.calls <= self.failures:
            raise RuntimeError(f"flake {self.calls}")
        return {"output": "finally"}

    async def validate(self, agent, result, task):
        return ValidationResult(is_valid=True)


@pytest.mark.asyncio
async def test_step_retry_recovers(orchestrator, make_agent):
    behavior = FlakyBehavior(failures=2)
    orchestrator.register_agent(make_agent(behavior=behavior))
    engine = WorkflowEngine(orchestrator, FAST)
    engine.register_template(_template([_step("only")]))

    execution = await engine.wait_for_execution(await engine.execute_workflow("flow"), timeout=5)

    assert execution.status is ExecutionStatus.COMPLETED
    assert execution.step("only").attempts == 3
    assert execution.step("only").error is None
    assert execution.results["only"] == {"output": "finally"}
    await orchestrator.shutdown()


@pytest.mark.asyncio
async def test_step_timeout_cancels_the_waiting_task(orchestrator):
    settings = WorkflowSettings(max_attempts=1, retry_delay=0.0, step_timeout=0.05)
    engine = WorkflowEngine(orchestrator, settings, [_template([_step("lonely")])])

    execution = await engine.wait_for_execution(await engine.execute_workflow("flow"), timeout=5)

    assert execution.status is ExecutionStatus.FAILED
    task_id = execution.step("lonely").task_id
    assert orchestrator.get_task_status(task_id).status is TaskStatus.CANCELLED
    await orchestrator.shutdown()


@pytest.mark.asyncio
async def test_unknown_workflow_and_execution(orchestrator):
    engine = WorkflowEngine(orchestrator, FAST)
    with pytest.raises(WorkflowNotFoundError):
        await engine.execute_workflow("nope")
    with pytest.raises(WorkflowNotFoundError, match="execution nope"):
        await engine.wait_for_execution("nope")
    assert engine.get_workflow_status("nope") is None


@pytest.mark.asyncio
async def test_waiting_past_the_deadline_raises_a_timeout(orchestrator):
    settings = WorkflowSettings(max_attempts=1, retry_delay=0.0, step_timeout=5.0)
    engine = WorkflowEngine(orchestrator, settings, [_template([_step("stuck")])])
    execution_id = await engine.execute_workflow("flow")

    with pytest.raises(WorkflowTimeoutError) as info:
        await engine.wait_for_execution(execution_id, timeout=0.05)

    assert isinstance(info.value, TaskTimeoutError)
    assert info.value.execution_id == execution_id
    assert "still running" in str(info.value)
    await engine.shutdown()
    await orchestrator.shutdown()


def test_step_accepts_a_single_dependency_string():
    template = WorkflowTemplate.from_mapping(
        {
            "id": "flow",
            "steps": [
                _step("build"),
                {**_step("deploy"), "dependencies": "build", "required_capabilities": "docker"},
            ],
        }
    )

    deploy = template.steps[1]
    assert deploy.dependencies == ["build"]
    assert deploy.required_capabilities == ["docker"]
    assert [step.id for step in execution_order(template)] == ["build", "deploy"]

def test_builtin_templates_register(orchestrator):
    engine = WorkflowEngine(orchestrator, FAST, builtin_templates())

    assert {template.id for template in engine.list_templates()} == {
        "software-development",
        "marketing-campaign",
        "website-launch",
        "product-launch",
    }
    assert [template.id for template in engine.list_templates("marketing")] == ["marketing-campaign"]
    launch = engine.get_template("product-launch")
    assert launch.get_step("marketing").task_type is TaskType.CONTENT_MARKETING
    assert AgentType.LEAD_GENERATION in launch.required_agent_types
    assert engine.delete_template("product-launch") is True
    assert engine.get_template("product-launch") is None
