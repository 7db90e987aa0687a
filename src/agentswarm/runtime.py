"""Wires providers, agents, the orchestrator and the workflow engine from config."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

from .agents.base import Agent
from .agents.orchestrator import Orchestrator
from .agents.registry import AgentRegistry
from .agents.selector import AgentSelector
from .agents.templates import AgentCreationRequest, AgentTemplate, AgentTemplateCatalog, create_agent
from .config import (
    DEFAULT_PROVIDER_TYPE,
    AgentSpec,
    ConfigError,
    ProjectConfig,
    ProvidersSpec,
    instantiate_from_path,
)
from .errors import AgentCreationError, WorkflowValidationError
from .llm.router import ProviderRouter
from .memory.simple import ConversationBufferMemory
from .workflows.builtin import builtin_templates
from .workflows.engine import WorkflowEngine

logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    """Live services built for one project configuration."""

    config: ProjectConfig
    router: ProviderRouter
    orchestrator: Orchestrator
    workflows: WorkflowEngine
    agents: Dict[str, Agent] = field(default_factory=dict)
    agent_templates: AgentTemplateCatalog = field(default_factory=AgentTemplateCatalog)

    @property
    def registry(self) -> AgentRegistry:
        return self.orchestrator.registry

    def add_agent(self, request: AgentCreationRequest) -> Agent:
        agent = create_agent(request, self.router, catalog=self.agent_templates)
        self.orchestrator.register_agent(agent)
        self.agents[agent.name] = agent
        return agent

    def add_agent_template(self, template: AgentTemplate) -> AgentTemplate:
        return self.agent_templates.register_template(template)

    async def shutdown(self) -> None:
        await self.workflows.shutdown()
        await self.orchestrator.shutdown()


def build_router(spec: ProvidersSpec) -> ProviderRouter:
    router = ProviderRouter(spec.circuit_breaker)
    if not spec.items:
        router.register_provider("console", instantiate_from_path(DEFAULT_PROVIDER_TYPE))
        return router
    for item in spec.items.values():
        try:
            provider = instantiate_from_path(item.type, **item.params)
        except TypeError as exc:
            raise ConfigError(f"Provider '{item.name}' rejected its params: {exc}") from exc
        router.register_provider(item.name, provider, default=item.name == spec.default)
    return router


def build_agent(
    spec: AgentSpec, router: ProviderRouter, catalog: Optional[AgentTemplateCatalog] = None
) -> Agent:
    behavior = instantiate_from_path(spec.behavior, **spec.behavior_params)
    memory = instantiate_from_path(spec.memory.type, **spec.memory.params)
    if not isinstance(memory, ConversationBufferMemory):
        logger.warning("Agent %s memory %s is not supported, using default", spec.name, spec.memory.type)
        memory = ConversationBufferMemory()
    request = AgentCreationRequest(
        type=spec.type,
        template_id=spec.template,
        name=spec.name,
        description=spec.description,
        custom_capabilities=list(spec.skills),
        custom_specializations=list(spec.specializations),
        task_types=list(spec.task_types),
        max_concurrent_tasks=spec.max_concurrent_tasks,
        provider=spec.provider,
    )
    try:
        return create_agent(request, router, behavior=behavior, memory=memory, catalog=catalog)
    except AgentCreationError as exc:
        raise ConfigError(f"Agent '{spec.name}': {exc}") from exc


def build_runtime(config: ProjectConfig, router: Optional[ProviderRouter] = None) -> Runtime:
    """Build every service for ``config``; ``router`` overrides configured providers."""

    router = router or build_router(config.providers)
    registry = AgentRegistry()
    orchestrator = Orchestrator(
        registry=registry,
        selector=AgentSelector(registry, config.selector_weights),
        settings=config.orchestrator,
    )
    catalog = AgentTemplateCatalog()
    for template in config.agent_templates:
        catalog.register_template(template)
    agents: Dict[str, Agent] = {}
    for spec in config.agents.values():
        agent = build_agent(spec, router, catalog)
        orchestrator.register_agent(agent)
        agents[spec.name] = agent

    templates = builtin_templates() if config.workflows.include_builtin else []
    templates.extend(config.workflows.templates)
    try:
        engine = WorkflowEngine(orchestrator, config.workflows.settings, templates)
    except WorkflowValidationError as exc:
        raise ConfigError(str(exc)) from exc
    logger.info(
        "Runtime ready: %d agent(s), %d provider(s), %d workflow template(s)",
        len(agents),
        len(router.providers),
        len(engine.list_templates()),
    )
    return Runtime(
        config=config,
        router=router,
        orchestrator=orchestrator,
        workflows=engine,
        agents=agents,
        agent_templates=catalog,
    )
