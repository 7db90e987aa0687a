"""Agent templates and agent-creation requests."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional

from ..errors import AgentCreationError
from ..llm.router import ProviderRouter
from ..memory.simple import ConversationBufferMemory
from ..tasks.base import TaskType, ensure_iterable
from .base import Agent, AgentBehavior, AgentCapabilities, AgentType
from .behaviors import PromptBehavior

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AgentTemplate:
    """Default capability set for one agent role."""

    id: str
    name: str
    type: AgentType
    description: str
    skills: List[str]
    specializations: List[str]
    task_types: List[TaskType]
    max_concurrent_tasks: int = 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type.value,
            "description": self.description,
            "skills": list(self.skills),
            "specializations": list(self.specializations),
            "task_types": [item.value for item in self.task_types],
            "max_concurrent_tasks": self.max_concurrent_tasks,
        }

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "AgentTemplate":
        missing = [key for key in ("id", "type") if not data.get(key)]
        if missing:
            raise AgentCreationError(f"Agent template is missing required keys: {', '.join(missing)}")
        template_id = str(data["id"])
        try:
            task_types = [TaskType(item) for item in ensure_iterable(data.get("task_types"))]
            max_concurrent = int(data.get("max_concurrent_tasks", 1))
        except (TypeError, ValueError) as exc:
            raise AgentCreationError(f"Agent template '{template_id}': {exc}") from exc
        if max_concurrent < 1:
            raise AgentCreationError(f"Agent template '{template_id}': max_concurrent_tasks must be at least 1")
        return cls(
            id=template_id,
            name=str(data.get("name") or template_id),
            type=_agent_type(data["type"]),
            description=str(data.get("description", "")),
            skills=[str(item) for item in ensure_iterable(data.get("skills"))],
            specializations=[str(item) for item in ensure_iterable(data.get("specializations"))],
            task_types=task_types or [TaskType.GENERAL],
            max_concurrent_tasks=max_concurrent,
        )


AGENT_TEMPLATES: Dict[str, AgentTemplate] = {
    template.id: template
    for template in (
        AgentTemplate(
            id="developer-template",
            name="Developer Agent",
            type=AgentType.DEVELOPER,
            description="Software development, code generation and review",
            skills=["code-generation", "code-review", "refactoring", "debugging"],
            specializations=["software-development", "programming"],
            task_types=[TaskType.CODE_GENERATION, TaskType.CODE_REVIEW],
            max_concurrent_tasks=3,
        ),
        AgentTemplate(
            id="qa-template",
            name="QA Agent",
            type=AgentType.QA,
            description="Testing and quality assurance",
            skills=["test-generation", "test-execution", "quality-assurance"],
            specializations=["testing", "qa"],
            task_types=[TaskType.TESTING],
            max_concurrent_tasks=2,
        ),
        AgentTemplate(
            id="product-manager-template",
            name="Product Manager Agent",
            type=AgentType.PRODUCT_MANAGER,
            description="Requirements analysis, user stories and planning",
            skills=["requirements-analysis", "user-stories", "prioritization", "roadmapping"],
            specializations=["product-management", "planning"],
            task_types=[TaskType.REQUIREMENTS_ANALYSIS, TaskType.GENERAL],
            max_concurrent_tasks=5,
        ),
        AgentTemplate(
            id="devops-template",
            name="DevOps Agent",
            type=AgentType.DEVOPS,
            description="Deployment, infrastructure and monitoring",
            skills=["deployment", "ci-cd", "infrastructure", "monitoring"],
            specializations=["devops", "operations"],
            task_types=[TaskType.DEPLOYMENT],
            max_concurrent_tasks=2,
        ),
        AgentTemplate(
            id="designer-template",
            name="Designer Agent",
            type=AgentType.DESIGNER,
            description="Interface design, mockups and style guides",
            skills=["ui-design", "ux-design", "prototyping"],
            specializations=["design"],
            task_types=[TaskType.DESIGN],
        ),
        AgentTemplate(
            id="marketing-template",
            name="Marketing Agent",
            type=AgentType.MARKETING,
            description="Campaign content and audience messaging",
            skills=["copywriting", "content-strategy", "campaign-planning"],
            specializations=["marketing", "content"],
            task_types=[TaskType.CONTENT_MARKETING],
            max_concurrent_tasks=2,
        ),
        AgentTemplate(
            id="seo-template",
            name="SEO Agent",
            type=AgentType.SEO,
            description="Search engine optimization",
            skills=["keyword-research", "on-page-seo", "technical-seo", "content-optimization"],
            specializations=["seo", "content-optimization"],
            task_types=[TaskType.SEO_OPTIMIZATION, TaskType.RESEARCH],
            max_concurrent_tasks=2,
        ),
        AgentTemplate(
            id="lead-gen-template",
            name="Lead Generation Agent",
            type=AgentType.LEAD_GENERATION,
            description="Lead generation and conversion optimization",
            skills=["lead-strategy", "campaign-planning", "funnel-optimization"],
            specializations=["lead-generation", "marketing-automation"],
            task_types=[TaskType.LEAD_GENERATION],
            max_concurrent_tasks=2,
        ),
        AgentTemplate(
            id="aiml-template",
            name="AI/ML Expert Agent",
            type=AgentType.AI_ML,
            description="Model selection, evaluation and MLOps readiness",
            skills=["model-selection", "evaluation-design", "ml-observability", "feature-engineering"],
            specializations=["ai-ml", "mlops", "research"],
            task_types=[TaskType.RESEARCH, TaskType.DESIGN],
        ),
        AgentTemplate(
            id="mentor-template",
            name="Mentor Lead Agent",
            type=AgentType.MENTOR,
            description="Mentorship, retrospectives and improvement plans",
            skills=["mentorship", "retrospective", "skill-mapping", "feedback-loop"],
            specializations=["leadership", "coaching"],
            task_types=[TaskType.GENERAL, TaskType.CODE_REVIEW],
        ),
    )
}


class AgentTemplateCatalog:
    """The built-in templates plus any registered while the process runs."""

    def __init__(self, templates: Optional[Iterable[AgentTemplate]] = None) -> None:
        source = AGENT_TEMPLATES.values() if templates is None else templates
        self._templates: Dict[str, AgentTemplate] = {template.id: template for template in source}

    def register_template(self, template: AgentTemplate) -> AgentTemplate:
        if template.id in self._templates:
            logger.info("Replacing agent template %s", template.id)
        self._templates[template.id] = template
        return template

    def get(self, template_id: str) -> Optional[AgentTemplate]:
        return self._templates.get(template_id)

    def list_templates(self) -> List[AgentTemplate]:
        return list(self._templates.values())

    def for_type(self, agent_type: AgentType | str) -> Optional[AgentTemplate]:
        wanted = AgentType(agent_type)
        for template in self._templates.values():
            if template.type is wanted:
                return template
        return None

    def __contains__(self, template_id: str) -> bool:
        return template_id in self._templates

    def __len__(self) -> int:
        return len(self._templates)


def template_for_type(
    agent_type: AgentType | str, catalog: Optional[AgentTemplateCatalog] = None
) -> Optional[AgentTemplate]:
    if catalog is None:
        catalog = AgentTemplateCatalog()
    return catalog.for_type(agent_type)


@dataclass
class AgentCreationRequest:
    """Request to build an agent from a template plus custom capabilities."""

    type: Optional[str] = None
    template_id: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    custom_capabilities: List[str] = field(default_factory=list)
    custom_specializations: List[str] = field(default_factory=list)
    task_types: List[str] = field(default_factory=list)
    max_concurrent_tasks: Optional[int] = None
    provider: Optional[str] = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "AgentCreationRequest":
        return cls(
            type=data.get("type"),
            template_id=data.get("template_id") or data.get("template"),
            name=data.get("name"),
            description=data.get("description"),
            custom_capabilities=list(data.get("custom_capabilities", data.get("skills", [])) or []),
            custom_specializations=list(
                data.get("custom_specializations", data.get("specializations", [])) or []
            ),
            task_types=list(data.get("task_types", []) or []),
            max_concurrent_tasks=data.get("max_concurrent_tasks"),
            provider=data.get("provider"),
        )


def _agent_type(value: AgentType | str) -> AgentType:
    try:
        return AgentType(value)
    except ValueError:
        raise AgentCreationError(f"Unknown agent type: {value}") from None


def resolve_template(
    request: AgentCreationRequest, catalog: Optional[AgentTemplateCatalog] = None
) -> AgentTemplate:
    if catalog is None:
        catalog = AgentTemplateCatalog()
    if request.template_id:
        template = catalog.get(request.template_id)
        if template is None:
            raise AgentCreationError(f"No agent template named '{request.template_id}'")
        if request.type and template.type is not _agent_type(request.type):
            raise AgentCreationError(
                f"Template '{template.id}' builds {template.type.value} agents, not {request.type}"
            )
        return template
    if not request.type:
        raise AgentCreationError("Agent creation requires a type or a template id")
    template = catalog.for_type(_agent_type(request.type))
    if template is None:
        raise AgentCreationError(f"No template found for agent type: {request.type}")
    return template


def create_agent(
    request: AgentCreationRequest,
    router: Optional[ProviderRouter],
    *,
    behavior: Optional[AgentBehavior] = None,
    memory: Optional[ConversationBufferMemory] = None,
    catalog: Optional[AgentTemplateCatalog] = None,
) -> Agent:
    """Build an agent from its template, merging the request's custom fields."""

    template = resolve_template(request, catalog)
    try:
        task_types = [TaskType(item) for item in request.task_types] or list(template.task_types)
        capabilities = AgentCapabilities(
            skills=list(dict.fromkeys([*template.skills, *request.custom_capabilities])),
            specializations=list(
                dict.fromkeys([*template.specializations, *request.custom_specializations])
            ),
            supported_task_types=task_types,
            max_concurrent_tasks=request.max_concurrent_tasks or template.max_concurrent_tasks,
        )
    except ValueError as exc:
        raise AgentCreationError(str(exc)) from exc
    return Agent(
        name=request.name or template.name,
        agent_type=template.type,
        capabilities=capabilities,
        router=router,
        behavior=behavior or PromptBehavior(),
        description=request.description or template.description,
        preferred_provider=request.provider,
        memory=memory,
    )
