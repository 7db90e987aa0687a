"""Agent package exports."""

from .base import (
    Agent,
    AgentBehavior,
    AgentCapabilities,
    AgentStatus,
    AgentType,
    PerformanceMetrics,
    TaskAnalysis,
    ValidationResult,
)
from .behaviors import PromptBehavior
from .orchestrator import Orchestrator, OrchestratorSettings
from .registry import AgentRegistry
from .selector import AgentSelector, ScoringWeights
from .templates import AGENT_TEMPLATES, AgentCreationRequest, AgentTemplate, AgentTemplateCatalog, create_agent

__all__ = [
    "AGENT_TEMPLATES",
    "Agent",
    "AgentBehavior",
    "AgentCapabilities",
    "AgentCreationRequest",
    "AgentRegistry",
    "AgentSelector",
    "AgentStatus",
    "AgentTemplate",
    "AgentTemplateCatalog",
    "AgentType",
    "Orchestrator",
    "OrchestratorSettings",
    "PerformanceMetrics",
    "PromptBehavior",
    "ScoringWeights",
    "TaskAnalysis",
    "ValidationResult",
    "create_agent",
]
