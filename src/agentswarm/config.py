"""Configuration helpers for agentswarm projects."""

from __future__ import annotations

import importlib
import pathlib
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, MutableMapping, Optional, TypeVar

import yaml

from .agents.orchestrator import OrchestratorSettings
from .agents.selector import ScoringWeights
from .agents.templates import AgentTemplate
from .errors import AgentCreationError, AgentSwarmError, WorkflowValidationError
from .llm.router import CircuitBreakerConfig
from .tasks.base import ensure_iterable
from .workflows.base import WorkflowTemplate
from .workflows.engine import WorkflowSettings

T = TypeVar("T")

DEFAULT_PROVIDER_TYPE = "agentswarm.llm.provider:ConsoleEchoProvider"
DEFAULT_BEHAVIOR_TYPE = "agentswarm.agents.behaviors:PromptBehavior"


class ConfigError(AgentSwarmError, RuntimeError):
    """Raised when configuration files are invalid."""


def _section(builder: Callable[[Any], T], data: Any, label: str) -> T:
    try:
        return builder(data)
    except (AttributeError, TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid '{label}' section: {exc}") from exc


@dataclass
class ProviderSpec:
    """Configuration for one capability provider."""

    name: str
    type: str
    params: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, name: str, data: Mapping[str, Any]) -> "ProviderSpec":
        if "type" not in data:
            raise ConfigError(f"Provider '{name}' requires a type path")
        return cls(name=name, type=str(data["type"]), params=dict(data.get("params", {})))


@dataclass
class ProvidersSpec:
    default: Optional[str] = None
    circuit_breaker: CircuitBreakerConfig = field(default_factory=CircuitBreakerConfig)
    items: Dict[str, ProviderSpec] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "ProvidersSpec":
        if not data:
            return cls()
        breaker = data.get("circuit_breaker") or {}
        items = {
            name: ProviderSpec.from_mapping(name, info or {})
            for name, info in (data.get("items") or {}).items()
        }
        default = data.get("default")
        if default is not None and default not in items:
            raise ConfigError(f"Default provider '{default}' is not defined under providers.items")
        return cls(
            default=default,
            circuit_breaker=_section(
                lambda raw: CircuitBreakerConfig(
                    failure_threshold=int(raw.get("failure_threshold", 3)),
                    cooldown=float(raw.get("cooldown", 30.0)),
                ),
                breaker,
                "providers.circuit_breaker",
            ),
            items=items,
        )


@dataclass
class MemorySpec:
    """Memory backend configuration."""

    type: str = "agentswarm.memory.simple:ConversationBufferMemory"
    params: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "MemorySpec":
        if not data:
            return cls()
        return cls(
            type=data.get("type", cls.type_default()),
            params=dict(data.get("params", {})),
        )

    @staticmethod
    def type_default() -> str:
        return "agentswarm.memory.simple:ConversationBufferMemory"


@dataclass
class AgentSpec:
    """Definition of an agent from config."""

    name: str
    type: Optional[str] = None
    template: Optional[str] = None
    description: Optional[str] = None
    skills: List[str] = field(default_factory=list)
    specializations: List[str] = field(default_factory=list)
    task_types: List[str] = field(default_factory=list)
    max_concurrent_tasks: Optional[int] = None
    behavior: str = DEFAULT_BEHAVIOR_TYPE
    behavior_params: Dict[str, Any] = field(default_factory=dict)
    provider: Optional[str] = None
    memory: MemorySpec = field(default_factory=MemorySpec)

    @classmethod
    def from_mapping(cls, name: str, data: Mapping[str, Any]) -> "AgentSpec":
        if not data.get("type") and not data.get("template"):
            raise ConfigError(f"Agent '{name}' requires a type or a template")
        max_concurrent = data.get("max_concurrent_tasks")
        return cls(
            name=name,
            type=data.get("type"),
            template=data.get("template"),
            description=data.get("description"),
            skills=[str(item) for item in ensure_iterable(data.get("skills"))],
            specializations=[str(item) for item in ensure_iterable(data.get("specializations"))],
            task_types=[str(item) for item in ensure_iterable(data.get("task_types"))],
            max_concurrent_tasks=int(max_concurrent) if max_concurrent is not None else None,
            behavior=str(data.get("behavior", DEFAULT_BEHAVIOR_TYPE)),
            behavior_params=dict(data.get("behavior_params", {})),
            provider=data.get("provider"),
            memory=MemorySpec.from_mapping(data.get("memory")),
        )


@dataclass
class TaskSpec:
    """Represents a task to be submitted by ``agentswarm run``."""

    id: str
    description: str
    title: str
    type: str = "GENERAL"
    priority: str = "MEDIUM"
    required_capabilities: List[str] = field(default_factory=list)
    context: Dict[str, Any] = field(default_factory=dict)
    preferred_agent_type: Optional[str] = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "TaskSpec":
        missing = [key for key in ("id", "description") if key not in data]
        if missing:
            raise ConfigError(f"Task is missing required keys: {', '.join(missing)}")
        return cls(
            id=str(data["id"]),
            description=str(data["description"]),
            title=str(data.get("title", data["id"])),
            type=str(data.get("type", "GENERAL")).upper(),
            priority=str(data.get("priority", "MEDIUM")).upper(),
            required_capabilities=[str(item) for item in ensure_iterable(data.get("required_capabilities"))],
            context=dict(data.get("context", {})),
            preferred_agent_type=data.get("preferred_agent_type"),
        )


@dataclass
class WorkflowsSpec:
    settings: WorkflowSettings = field(default_factory=WorkflowSettings)
    include_builtin: bool = True
    templates: List[WorkflowTemplate] = field(default_factory=list)

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "WorkflowsSpec":
        if not data:
            return cls()
        templates: List[WorkflowTemplate] = []
        for template_id, info in (data.get("templates") or {}).items():
            try:
                templates.append(WorkflowTemplate.from_mapping(info or {}, template_id=template_id))
            except WorkflowValidationError as exc:
                raise ConfigError(str(exc)) from exc
        return cls(
            settings=_section(WorkflowSettings.from_mapping, data.get("settings"), "workflows.settings"),
            include_builtin=bool(data.get("include_builtin", True)),
            templates=templates,
        )


@dataclass
class ProjectConfig:
    """Representation of the YAML configuration."""

    name: str
    description: Optional[str]
    providers: ProvidersSpec
    orchestrator: OrchestratorSettings
    selector_weights: ScoringWeights
    workflows: WorkflowsSpec
    agents: Dict[str, AgentSpec]
    tasks: List[TaskSpec]
    agent_templates: List[AgentTemplate] = field(default_factory=list)

    @classmethod
    def from_file(cls, path: str | pathlib.Path) -> "ProjectConfig":
        path = pathlib.Path(path)
        try:
            data = yaml.safe_load(path.read_text())
        except OSError as exc:
            raise ConfigError(f"Cannot read configuration {path}: {exc}") from exc
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
        return cls.from_mapping(data, default_name=path.stem)

    @classmethod
    def from_yaml(cls, text: str, *, default_name: str = "agentswarm") -> "ProjectConfig":
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid YAML: {exc}") from exc
        return cls.from_mapping(data, default_name=default_name)

    @classmethod
    def from_mapping(cls, data: Any, *, default_name: str = "agentswarm") -> "ProjectConfig":
        if not isinstance(data, MutableMapping):
            raise ConfigError("Configuration root must be a mapping")
        agents = {
            name: AgentSpec.from_mapping(name, info or {})
            for name, info in (data.get("agents") or {}).items()
        }
        if not agents:
            raise ConfigError("At least one agent must be defined")
        tasks = [TaskSpec.from_mapping(item) for item in data.get("tasks") or []]
        ids = [task.id for task in tasks]
        if len(ids) != len(set(ids)):
            raise ConfigError("Task ids must be unique")
        providers = ProvidersSpec.from_mapping(data.get("providers"))
        for spec in agents.values():
            if spec.provider and spec.provider not in providers.items:
                raise ConfigError(f"Agent '{spec.name}' references unknown provider '{spec.provider}'")
        agent_templates: List[AgentTemplate] = []
        for template_id, info in (data.get("agent_templates") or {}).items():
            if not isinstance(info or {}, Mapping):
                raise ConfigError(f"Agent template '{template_id}' must be a mapping")
            try:
                agent_templates.append(AgentTemplate.from_mapping({**(info or {}), "id": template_id}))
            except AgentCreationError as exc:
                raise ConfigError(str(exc)) from exc
        selector = data.get("selector") or {}
        return cls(
            name=data.get("name", default_name),
            description=data.get("description"),
            providers=providers,
            orchestrator=_section(OrchestratorSettings.from_mapping, data.get("orchestrator"), "orchestrator"),
            selector_weights=_section(ScoringWeights.from_mapping, selector.get("weights"), "selector.weights"),
            workflows=WorkflowsSpec.from_mapping(data.get("workflows")),
            agents=agents,
            tasks=tasks,
            agent_templates=agent_templates,
        )

    def get_agent(self, name: str) -> AgentSpec:
        try:
            return self.agents[name]
        except KeyError as exc:
            raise ConfigError(f"Unknown agent '{name}'") from exc


def import_string(path: str) -> Any:
    """Return attribute from module specified by path "module:qualname"."""

    if ":" not in path:
        raise ConfigError(f"Import path '{path}' must use module:qualname format")
    module_path, attr = path.split(":", 1)
    try:
        module = importlib.import_module(module_path)
    except ImportError as exc:
        raise ConfigError(f"Cannot import module '{module_path}': {exc}") from exc
    target: Any = module
    for part in attr.split("."):
        try:
            target = getattr(target, part)
        except AttributeError as exc:
            raise ConfigError(f"Module '{module_path}' has no attribute '{attr}'") from exc
    return target


def instantiate_from_path(path: str, *args: Any, **kwargs: Any) -> Any:
    """Import and instantiate a class given its dotted path."""

    cls = import_string(path)
    return cls(*args, **kwargs)
