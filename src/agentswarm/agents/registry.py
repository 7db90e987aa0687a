"""Registry that keeps track of live agents and their current load."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..errors import AgentCapacityError
from ..tasks.base import utcnow
from .base import Agent, AgentStatus, AgentType, PerformanceMetrics

logger = logging.getLogger(__name__)


@dataclass
class AgentMetadata:
    registered_at: datetime = field(default_factory=utcnow)
    last_active: datetime = field(default_factory=utcnow)
    current_load: int = 0


class AgentRegistry:
    """Stores agents in registration order alongside per-agent load counters.

    Load is owned here rather than by the agent so there is a single place
    that pairs increments with decrements.
    """

    def __init__(self) -> None:
        self._agents: Dict[str, Agent] = {}
        self._metadata: Dict[str, AgentMetadata] = {}

    def register_agent(self, agent: Agent, *, overwrite: bool = False) -> None:
        if agent.id in self._agents and not overwrite:
            raise ValueError(f"Agent {agent.id} already registered")
        self._agents[agent.id] = agent
        self._metadata[agent.id] = AgentMetadata()
        agent.update_status(AgentStatus.IDLE)
        logger.info("Registered agent %s (%s)", agent.name, agent.type.value)

    def unregister_agent(self, agent_id: str) -> bool:
        agent = self._agents.pop(agent_id, None)
        self._metadata.pop(agent_id, None)
        if agent is not None:
            logger.info("Unregistered agent %s", agent.name)
        return agent is not None

    def get_agent(self, agent_id: str) -> Optional[Agent]:
        return self._agents.get(agent_id)

    def all_agents(self) -> List[Agent]:
        return list(self._agents.values())

    def available_agents(self) -> List[Agent]:
        return [agent for agent in self._agents.values() if agent.status is AgentStatus.IDLE]

    def agents_by_type(self, agent_type: AgentType | str) -> List[Agent]:
        wanted = AgentType(agent_type)
        return [agent for agent in self._agents.values() if agent.type is wanted]

    def update_agent_status(self, agent_id: str, status: AgentStatus) -> None:
        agent = self._agents.get(agent_id)
        if agent is None:
            return
        agent.update_status(status)
        self._metadata[agent_id].last_active = utcnow()

    def mark_failed(self, agent_id: str) -> None:
        self.update_agent_status(agent_id, AgentStatus.ERROR)

    def agent_metrics(self, agent_id: str) -> Optional[PerformanceMetrics]:
        agent = self._agents.get(agent_id)
        return agent.metrics if agent else None

    def agent_insights(self, agent_id: str) -> Optional[Dict[str, Any]]:
        agent = self._agents.get(agent_id)
        if agent is None:
            return None
        return {"agent_id": agent.id, "name": agent.name, "type": agent.type.value, **agent.metrics.insights()}

    def metadata(self, agent_id: str) -> Optional[AgentMetadata]:
        return self._metadata.get(agent_id)

    def increment_load(self, agent_id: str) -> int:
        agent = self._agents[agent_id]
        meta = self._metadata[agent_id]
        if meta.current_load >= agent.capabilities.max_concurrent_tasks:
            raise AgentCapacityError(
                f"Agent {agent.name} is at capacity ({agent.capabilities.max_concurrent_tasks})"
            )
        meta.current_load += 1
        meta.last_active = utcnow()
        return meta.current_load

    def decrement_load(self, agent_id: str) -> int:
        meta = self._metadata.get(agent_id)
        if meta is None:
            return 0
        meta.current_load = max(0, meta.current_load - 1)
        meta.last_active = utcnow()
        agent = self._agents[agent_id]
        if meta.current_load == 0 and agent.status in (AgentStatus.COMPLETED, AgentStatus.ERROR):
            agent.update_status(AgentStatus.IDLE)
        return meta.current_load

    def current_load(self, agent_id: str) -> int:
        meta = self._metadata.get(agent_id)
        return meta.current_load if meta else 0

    def average_load(self) -> float:
        if not self._metadata:
            return 0.0
        return sum(meta.current_load for meta in self._metadata.values()) / len(self._metadata)

    def system_stats(self) -> Dict[str, Any]:
        agents = list(self._agents.values())
        by_type: Dict[str, int] = {}
        for agent in agents:
            by_type[agent.type.value] = by_type.get(agent.type.value, 0) + 1
        total_tasks = sum(agent.metrics.total_tasks for agent in agents)
        successful = sum(agent.metrics.successful_tasks for agent in agents)
        available = len(self.available_agents())
        return {
            "total_agents": len(agents),
            "available_agents": available,
            "busy_agents": len(agents) - available,
            "agents_by_type": by_type,
            "total_tasks_processed": total_tasks,
            "overall_success_rate": successful / total_tasks if total_tasks else 0.0,
        }

    def __contains__(self, agent_id: str) -> bool:
        return agent_id in self._agents

    def __len__(self) -> int:
        return len(self._agents)
