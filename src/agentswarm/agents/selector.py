"""Weighted multi-factor agent selection."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, fields, replace
from typing import Any, Dict, List, Mapping, Optional

from ..errors import NoAgentAvailableError
from ..tasks.base import Task
from .base import Agent, AgentType
from .registry import AgentRegistry

logger = logging.getLogger(__name__)

UNSUPPORTED_TYPE_SCORE = 0.3
GENERIC_HISTORY_PENALTY = 0.7
NEUTRAL_HISTORY_SCORE = 0.5


@dataclass(frozen=True)
class ScoringWeights:
    specialization: float = 0.35
    historical_success: float = 0.25
    availability: float = 0.20
    recent_performance: float = 0.15
    load_balance: float = 0.05

    def __post_init__(self) -> None:
        for item in fields(self):
            if getattr(self, item.name) < 0:
                raise ValueError(f"Scoring weight '{item.name}' must be non-negative")
        if self.total <= 0:
            raise ValueError("At least one scoring weight must be positive")

    @property
    def total(self) -> float:
        return sum(getattr(self, item.name) for item in fields(self))

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "ScoringWeights":
        if not data:
            return cls()
        known = {item.name for item in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown scoring weights: {', '.join(unknown)}")
        return cls(**{key: float(value) for key, value in data.items()})

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


@dataclass(frozen=True)
class ScoreBreakdown:
    """Per-factor scores, each in [0, 1]."""

    specialization: float
    historical_success: float
    availability: float
    recent_performance: float
    load_balance: float

    def combine(self, weights: ScoringWeights) -> float:
        weighted = sum(
            getattr(self, item.name) * getattr(weights, item.name) for item in fields(self)
        )
        return weighted / weights.total

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


class AgentSelector:
    """Scores idle agents against a task and returns the best fit.

    The score is a weighted mean of five factors, so it stays in [0, 1]
    however the weights are tuned. Ties keep registration order.
    """

    def __init__(self, registry: AgentRegistry, weights: Optional[ScoringWeights] = None) -> None:
        self.registry = registry
        self._weights = weights or ScoringWeights()

    @property
    def weights(self) -> ScoringWeights:
        return self._weights

    def update_weights(self, **changes: float) -> ScoringWeights:
        self._weights = replace(self._weights, **changes)
        return self._weights

    def select_agent(self, task: Task) -> Optional[Agent]:
        ranked = self._rank(task)
        return ranked[0] if ranked else None

    def require_agent(self, task: Task) -> Agent:
        agent = self.select_agent(task)
        if agent is None:
            raise NoAgentAvailableError(f"No idle agent can take task {task.id}")
        return agent

    def select_agents(self, task: Task, count: int) -> List[Agent]:
        return self._rank(task)[: max(0, count)]

    def score(self, agent: Agent, task: Task) -> float:
        return self.score_breakdown(agent, task).combine(self._weights)

    def score_breakdown(self, agent: Agent, task: Task) -> ScoreBreakdown:
        return ScoreBreakdown(
            specialization=self._specialization(agent, task),
            historical_success=self._historical_success(agent, task),
            availability=self._availability(agent),
            recent_performance=agent.metrics.success_rate,
            load_balance=self._load_balance(agent),
        )

    def _candidates(self, task: Task) -> List[Agent]:
        idle = self.registry.available_agents()
        if task.preferred_agent_type:
            try:
                preferred = AgentType(task.preferred_agent_type)
            except ValueError:
                logger.debug("Ignoring unknown preferred agent type %s", task.preferred_agent_type)
            else:
                matching = [agent for agent in idle if agent.type is preferred]
                if matching:
                    idle = matching
        if not task.required_capabilities:
            return idle
        capable = [agent for agent in idle if agent.can_handle(task)]
        return capable or idle

    def _rank(self, task: Task) -> List[Agent]:
        scored = [(self.score(agent, task), index, agent) for index, agent in enumerate(self._candidates(task))]
        scored.sort(key=lambda item: (-item[0], item[1]))
        return [agent for _, _, agent in scored]

    def _specialization(self, agent: Agent, task: Task) -> float:
        if not agent.capabilities.supports(task.type):
            return UNSUPPORTED_TYPE_SCORE
        required = set(task.required_capabilities)
        if not required:
            return 1.0
        return len(required & set(agent.capabilities.skills)) / len(required)

    def _historical_success(self, agent: Agent, task: Task) -> float:
        metrics = agent.metrics
        if metrics.total_tasks == 0:
            return NEUTRAL_HISTORY_SCORE
        if metrics.handled(task.type) > 0:
            return metrics.success_rate
        return metrics.success_rate * GENERIC_HISTORY_PENALTY

    def _availability(self, agent: Agent) -> float:
        load = self.registry.current_load(agent.id)
        capacity = agent.capabilities.max_concurrent_tasks
        if load >= capacity:
            return 0.0
        return 1.0 - load / capacity

    def _load_balance(self, agent: Agent) -> float:
        load = self.registry.current_load(agent.id)
        average = self.registry.average_load()
        if load < average:
            return 1.0
        if load == average:
            return 0.5
        return max(0.0, 1.0 - (load - average) / average)
