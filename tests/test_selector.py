import pytest

from agentswarm.agents.base import AgentStatus, AgentType
from agentswarm.agents.registry import AgentRegistry
from agentswarm.agents.selector import AgentSelector, ScoreBreakdown, ScoringWeights
from agentswarm.errors import NoAgentAvailableError
from agentswarm.tasks.base import Task, TaskType


def _task(**kwargs):
    kwargs.setdefault("title", "work")
    kwargs.setdefault("description", "work")
    return Task(**kwargs)


def _registry(*agents):
    registry = AgentRegistry()
    for agent in agents:
        registry.register_agent(agent)
    return registry


def test_returns_none_without_idle_agents(make_agent):
    agent = make_agent()
    registry = _registry(agent)
    registry.update_agent_status(agent.id, AgentStatus.EXECUTING)

    assert AgentSelector(registry).select_agent(_task()) is None
    assert AgentSelector(AgentRegistry()).select_agent(_task()) is None
    with pytest.raises(NoAgentAvailableError):
        AgentSelector(registry).require_agent(_task())


def test_prefers_agent_with_matching_skills(make_agent):
    generalist = make_agent("generalist", skills=["writing"])
    specialist = make_agent("specialist", skills=["python", "fastapi"])
    selector = AgentSelector(_registry(generalist, specialist))

    chosen = selector.select_agent(_task(required_capabilities=["python", "fastapi"]))

    assert chosen is specialist


def test_agent_with_any_required_skill_stays_a_candidate(make_agent):
    partial = make_agent("partial", skills=["python"])
    unrelated = make_agent("unrelated", skills=["design"])
    selector = AgentSelector(_registry(unrelated, partial))
    task = _task(required_capabilities=["python", "go"])

    assert partial.can_handle(task)
    assert not unrelated.can_handle(task)
    assert unrelated.can_handle(_task())
    assert selector.select_agents(task, 5) == [partial]

def test_unsupported_task_type_scores_lower(make_agent):
    tester = make_agent("tester", task_types=[TaskType.TESTING])
    coder = make_agent("coder", task_types=[TaskType.CODE_GENERATION])
    selector = AgentSelector(_registry(tester, coder))
    task = _task(type=TaskType.CODE_GENERATION)

    assert selector.score_breakdown(tester, task).specialization == pytest.approx(0.3)
    assert selector.score_breakdown(coder, task).specialization == pytest.approx(1.0)
    assert selector.select_agent(task) is coder


def test_partial_skill_match_is_fractional(make_agent):
    agent = make_agent(skills=["python"])
    selector = AgentSelector(_registry(agent))

    breakdown = selector.score_breakdown(agent, _task(required_capabilities=["python", "go"]))

    assert breakdown.specialization == pytest.approx(0.5)


def test_falls_back_to_all_idle_agents_when_no_skill_matches(make_agent):
    first = make_agent("first", skills=["rust"])
    second = make_agent("second", skills=["go"])
    selector = AgentSelector(_registry(first, second))

    ranked = selector.select_agents(_task(required_capabilities=["cobol"]), 5)

    assert ranked == [first, second]


def test_ties_keep_registration_order(make_agent):
    agents = [make_agent(f"agent-{index}") for index in range(3)]
    selector = AgentSelector(_registry(*agents))

    assert selector.select_agent(_task()) is agents[0]
    assert selector.select_agents(_task(), 2) == agents[:2]


def test_preferred_agent_type_narrows_candidates(make_agent):
    dev = make_agent("dev", skills=["python"])
    qa = make_agent("qa", AgentType.QA)
    selector = AgentSelector(_registry(dev, qa))

    chosen = selector.select_agent(_task(required_capabilities=["python"], preferred_agent_type="QA"))

    assert chosen is qa


def test_history_factor(make_agent):
    veteran = make_agent("veteran")
    newcomer = make_agent("newcomer")
    selector = AgentSelector(_registry(veteran, newcomer))
    veteran.metrics.record(True, 1.0, TaskType.TESTING)
    veteran.metrics.record(False, 1.0, TaskType.TESTING)

    assert selector.score_breakdown(newcomer, _task()).historical_success == pytest.approx(0.5)
    assert selector.score_breakdown(veteran, _task(type=TaskType.TESTING)).historical_success == pytest.approx(0.5)
    assert selector.score_breakdown(veteran, _task(type=TaskType.DESIGN)).historical_success == pytest.approx(0.35)
    assert selector.score_breakdown(veteran, _task()).recent_performance == pytest.approx(0.5)


def test_availability_and_load_balance(make_agent):
    busy = make_agent("busy", max_tasks=4)
    quiet = make_agent("quiet", max_tasks=4)
    registry = _registry(busy, quiet)
    selector = AgentSelector(registry)
    registry.increment_load(busy.id)
    registry.increment_load(busy.id)

    busy_score = selector.score_breakdown(busy, _task())
    quiet_score = selector.score_breakdown(quiet, _task())

    assert busy_score.availability == pytest.approx(0.5)
    assert quiet_score.availability == pytest.approx(1.0)
    assert busy_score.load_balance == pytest.approx(0.0)
    assert quiet_score.load_balance == pytest.approx(1.0)
    assert selector.select_agent(_task()) is quiet


def test_scores_stay_in_unit_interval_for_any_weights(make_agent):
    agent = make_agent(skills=["python"])
    registry = _registry(agent)
    agent.metrics.record(True, 1.0, TaskType.GENERAL)
    for weights in (
        ScoringWeights(),
        ScoringWeights(specialization=10, historical_success=0, availability=0, recent_performance=0, load_balance=0),
        ScoringWeights(specialization=2, historical_success=3, availability=4, recent_performance=5, load_balance=6),
    ):
        score = AgentSelector(registry, weights).score(agent, _task(required_capabilities=["python", "go"]))
        assert 0.0 <= score <= 1.0


def test_raising_a_factor_never_lowers_the_score():
    weights = ScoringWeights()
    base = ScoreBreakdown(0.4, 0.5, 0.6, 0.2, 0.5)
    for name in ("specialization", "historical_success", "availability", "recent_performance", "load_balance"):
        improved = ScoreBreakdown(**{**base.to_dict(), name: 0.9})
        assert improved.combine(weights) >= base.combine(weights)


def test_weights_validation_and_updates(make_agent):
    with pytest.raises(ValueError):
        ScoringWeights(availability=-0.1)
    with pytest.raises(ValueError):
        ScoringWeights(0, 0, 0, 0, 0)
    with pytest.raises(ValueError):
        ScoringWeights.from_mapping({"speed": 1.0})

    assert ScoringWeights.from_mapping({"availability": "0.5"}).availability == 0.5
    selector = AgentSelector(_registry(make_agent()))
    updated = selector.update_weights(load_balance=0.25)
    assert updated.load_balance == 0.25
    assert selector.weights is updated
