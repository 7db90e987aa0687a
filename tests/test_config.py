import pathlib

import pytest

from agentswarm.agents.base import AgentType
from agentswarm.agents.templates import AgentCreationRequest
from agentswarm.config import ConfigError, ProjectConfig, import_string
from agentswarm.llm.provider import OllamaProvider, StaticResponseProvider
from agentswarm.llm.router import ProviderRouter
from agentswarm.memory.simple import ConversationBufferMemory
from agentswarm.runtime import build_runtime

EXAMPLE = pathlib.Path(__file__).resolve().parents[1] / "examples" / "configs" / "software_team.yaml"

MINIMAL = """
name: tiny
agents:
  dev:
    type: DEVELOPER
  qa:
    template: qa-template
tasks:
  - id: build
    description: Build it
    type: code_generation
"""


def test_minimal_config_defaults():
    config = ProjectConfig.from_yaml(MINIMAL)

    assert config.name == "tiny"
    assert set(config.agents) == {"dev", "qa"}
    assert config.get_agent("qa").template == "qa-template"
    task = config.tasks[0]
    assert task.title == "build"
    assert task.type == "CODE_GENERATION"
    assert task.priority == "MEDIUM"
    assert config.orchestrator.max_parallel_tasks == 1
    assert config.selector_weights.specialization == 0.35
    assert config.workflows.include_builtin is True
    assert config.providers.items == {}
    with pytest.raises(ConfigError):
        config.get_agent("ghost")


def test_example_config_loads():
    config = ProjectConfig.from_file(EXAMPLE)

    assert config.name == "software-team"
    assert config.providers.default == "local"
    assert config.providers.circuit_breaker.failure_threshold == 3
    assert [task.id for task in config.tasks] == ["stories", "api", "tests"]
    assert config.tasks[1].required_capabilities == ["python", "fastapi"]
    assert config.workflows.templates[0].id == "bugfix"
    assert config.agents["developer"].behavior_params == {"review": True}
    assert config.agents["devops"].memory.params == {"max_items": 10}


def test_example_runtime_wires_everything():
    runtime = build_runtime(ProjectConfig.from_file(EXAMPLE))

    assert runtime.router.default_provider == "local"
    assert isinstance(runtime.router.providers["local"], OllamaProvider)
    assert len(runtime.registry) == 4
    developer = runtime.agents["developer"]
    assert developer.type is AgentType.DEVELOPER
    assert "fastapi" in developer.capabilities.skills
    assert developer.behavior.review is True
    assert runtime.agents["devops"].preferred_provider == "local"
    assert runtime.agents["devops"].memory.max_items == 10
    assert runtime.workflows.get_template("bugfix") is not None
    assert runtime.workflows.get_template("software-development") is not None


@pytest.mark.parametrize(
    "text",
    [
        "- just\n- a list\n",
        "name: empty\n",
        "agents: {dev: {description: no type}}\n",
        "agents: {dev: {type: QA}}\ntasks: [{id: a, description: x}, {id: a, description: y}]\n",
        "agents: {dev: {type: QA}}\ntasks: [{id: a}]\n",
        "agents: {dev: {type: QA, provider: nowhere}}\n",
        "agents: {dev: {type: QA}}\nproviders: {default: ghost, items: {}}\n",
        "agents: {dev: {type: QA}}\nproviders: {items: {p: {params: {}}}}\n",
        "agents: {dev: {type: QA}}\nselector: {weights: {speed: 1}}\n",
        "agents: {dev: {type: QA}}\nselector: {weights: {availability: -1}}\n",
        "agents: {dev: {type: QA}}\norchestrator: {max_parallel_tasks: 0}\n",
        "agents: {dev: {type: QA}}\nworkflows: {settings: {max_attempts: 0}}\n",
        "agents: {dev: {type: QA}}\nworkflows: {templates: {bad: {steps: []}}}\n",
        "agents: {dev: {type: QA}}\nagent_templates: {odd: {type: WIZARD}}\n",
        "agents: {dev: {type: QA}}\nagent_templates: {odd: just-a-string}\n",
        "agents: [unbalanced\n",
    ],
)
def test_invalid_configs(text):
    with pytest.raises(ConfigError):
        ProjectConfig.from_yaml(text)


def test_configured_agent_template_backs_an_agent():
    config = ProjectConfig.from_yaml(
        """
agent_templates:
  writer-template:
    name: Writer
    type: TECH_WRITER
    skills: markdown
    task_types: [DOCUMENTATION]
agents:
  scribe:
    template: writer-template
  docs:
    type: TECH_WRITER
"""
    )

    runtime = build_runtime(config, router=ProviderRouter())

    assert [template.id for template in config.agent_templates] == ["writer-template"]
    assert "writer-template" in runtime.agent_templates
    assert runtime.agents["scribe"].capabilities.skills == ["markdown"]
    assert runtime.agents["docs"].name == "docs"
    assert runtime.agents["docs"].type is AgentType.TECH_WRITER


def test_missing_file():
    with pytest.raises(ConfigError):
        ProjectConfig.from_file("/nonexistent/agentswarm.yaml")


def test_import_string():
    assert import_string("agentswarm.llm.provider:StaticResponseProvider") is StaticResponseProvider
    assert import_string("agentswarm.llm.provider:ModelCapabilities.to_dict") is not None
    for path in ("no-colon", "agentswarm.missing:Thing", "agentswarm.llm.provider:Missing"):
        with pytest.raises(ConfigError):
            import_string(path)


def test_runtime_rejects_cyclic_workflow():
    config = ProjectConfig.from_yaml(
        """
agents: {dev: {type: DEVELOPER}}
workflows:
  templates:
    loop:
      steps:
        - {id: a, agent_type: DEVELOPER, task_type: GENERAL, dependencies: [b]}
        - {id: b, agent_type: DEVELOPER, task_type: GENERAL, dependencies: [a]}
"""
    )
    with pytest.raises(ConfigError):
        build_runtime(config)


def test_runtime_rejects_bad_agent_and_behavior():
    with pytest.raises(ConfigError):
        build_runtime(ProjectConfig.from_yaml("agents: {dev: {template: ghost-template}}"))
    with pytest.raises(ConfigError):
        build_runtime(ProjectConfig.from_yaml("agents: {dev: {type: QA, behavior: 'agentswarm.nope:Behavior'}}"))


def test_unsupported_memory_falls_back_to_buffer():
    config = ProjectConfig.from_yaml("agents: {dev: {type: QA, memory: {type: 'collections:OrderedDict'}}}")
    runtime = build_runtime(config)
    assert isinstance(runtime.agents["dev"].memory, ConversationBufferMemory)


@pytest.mark.asyncio
async def test_runtime_runs_configured_tasks_end_to_end():
    router = ProviderRouter()
    router.register_provider("static", StaticResponseProvider(fallback='{"isValid": true}'))
    runtime = build_runtime(ProjectConfig.from_file(EXAMPLE), router=router)
    orchestrator = runtime.orchestrator

    ids = {}
    for spec in runtime.config.tasks:
        ids[spec.id] = await orchestrator.submit_task(
            title=spec.title,
            description=spec.description,
            type=spec.type,
            priority=spec.priority,
            required_capabilities=spec.required_capabilities,
        )
    results = {key: await orchestrator.wait_for_task(task_id, 5) for key, task_id in ids.items()}

    assert all(result.success for result in results.values())
    assert results["api"].agent_id == runtime.agents["developer"].id
    assert results["stories"].agent_id == runtime.agents["pm"].id

    added = runtime.add_agent(AgentCreationRequest(type="SEO", name="seo-bot"))
    assert runtime.registry.get_agent(added.id) is added
    assert runtime.agents["seo-bot"] is added
    await runtime.shutdown()
