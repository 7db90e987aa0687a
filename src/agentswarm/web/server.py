"""FastAPI application exposing tasks, agents and workflows over HTTP."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..agents.templates import AgentCreationRequest, AgentTemplate
from ..errors import (
    AgentCreationError,
    NotFoundError,
    QueueFullError,
    TaskCancellationError,
    TaskNotFoundError,
    ValidationError,
    WorkflowNotFoundError,
)
from ..runtime import Runtime
from ..tasks.base import Task, TaskResult
from ..workflows.base import WorkflowTemplate

logger = logging.getLogger(__name__)

SUBSCRIBER_BUFFER = 100


class TaskRequest(BaseModel):
    title: str
    description: str
    type: str = "GENERAL"
    priority: str = "MEDIUM"
    required_capabilities: List[str] = Field(default_factory=list)
    context: Dict[str, Any] = Field(default_factory=dict)
    preferred_agent_type: Optional[str] = None


class AgentRequest(BaseModel):
    type: Optional[str] = None
    template_id: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    custom_capabilities: List[str] = Field(default_factory=list)
    custom_specializations: List[str] = Field(default_factory=list)
    task_types: List[str] = Field(default_factory=list)
    max_concurrent_tasks: Optional[int] = Field(default=None, ge=1)
    provider: Optional[str] = None


class AgentTemplateRequest(BaseModel):
    id: str
    type: str
    name: Optional[str] = None
    description: str = ""
    skills: List[str] = Field(default_factory=list)
    specializations: List[str] = Field(default_factory=list)
    task_types: List[str] = Field(default_factory=list)
    max_concurrent_tasks: int = Field(default=1, ge=1)


class WorkflowStepRequest(BaseModel):
    id: str
    name: Optional[str] = None
    agent_type: str
    task_type: str
    dependencies: List[str] = Field(default_factory=list)
    inputs: Dict[str, Any] = Field(default_factory=dict)
    expected_outputs: List[str] = Field(default_factory=list)
    required_capabilities: List[str] = Field(default_factory=list)


class WorkflowTemplateRequest(BaseModel):
    id: str
    name: Optional[str] = None
    description: str = ""
    category: str = "custom"
    steps: List[WorkflowStepRequest]


class WorkflowExecuteRequest(BaseModel):
    template_id: str
    inputs: Dict[str, Any] = Field(default_factory=dict)


@dataclass
class Broadcaster:
    """Fans task completion events out to websocket subscribers.

    Each subscriber gets a bounded buffer. When a slow client falls behind,
    its oldest pending event is dropped to make room.
    """

    buffer_size: int = SUBSCRIBER_BUFFER
    subscribers: List[asyncio.Queue] = field(default_factory=list)

    def subscribe(self) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.buffer_size)
        self.subscribers.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        if queue in self.subscribers:
            self.subscribers.remove(queue)

    def __call__(self, task: Task, result: TaskResult) -> None:
        event = {
            "type": "task_completed",
            "task": task.to_dict(),
            "result": result.to_dict(),
        }
        for queue in list(self.subscribers):
            if queue.full():
                queue.get_nowait()
                logger.debug("Dropped oldest task event for a slow subscriber")
            queue.put_nowait(event)


def _error(status_code: int, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


def create_app(runtime: Runtime) -> FastAPI:
    """Build the HTTP surface for a runtime."""

    app = FastAPI(title=f"agentswarm: {runtime.config.name}")
    app.state.runtime = runtime
    orchestrator = runtime.orchestrator
    workflows = runtime.workflows
    broadcaster = Broadcaster()
    orchestrator.add_listener(broadcaster)

    @app.exception_handler(ValidationError)
    async def _validation(_: Request, exc: ValidationError) -> JSONResponse:
        return _error(400, exc)

    @app.exception_handler(QueueFullError)
    async def _queue_full(_: Request, exc: QueueFullError) -> JSONResponse:
        return _error(503, exc)

    @app.exception_handler(NotFoundError)
    async def _not_found(_: Request, exc: NotFoundError) -> JSONResponse:
        return _error(404, exc)

    @app.exception_handler(TaskCancellationError)
    async def _cancel_rejected(_: Request, exc: TaskCancellationError) -> JSONResponse:
        return _error(409, exc)

    @app.exception_handler(AgentCreationError)
    async def _agent_creation(_: Request, exc: AgentCreationError) -> JSONResponse:
        return _error(400, exc)

    @app.get("/health")
    async def health() -> Dict[str, Any]:
        return {"status": "ok", "providers": runtime.router.health_check()}

    # Tasks --------------------------------------------------------------------

    @app.post("/api/tasks", status_code=201)
    async def submit_task(request: TaskRequest) -> Dict[str, Any]:
        task_id = await orchestrator.submit_task(**request.model_dump())
        return {"task_id": task_id, "status": "submitted"}

    @app.get("/api/tasks")
    async def list_tasks(status: Optional[str] = None) -> Dict[str, Any]:
        try:
            tasks = orchestrator.list_tasks(status.upper() if status else None)
        except ValueError:
            return JSONResponse(status_code=400, content={"detail": f"Unknown status: {status}"})
        return {"tasks": [task.to_dict() for task in tasks]}

    @app.get("/api/tasks/{task_id}")
    async def get_task(task_id: str) -> Dict[str, Any]:
        task = orchestrator.get_task_status(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return task.to_dict()

    @app.get("/api/tasks/{task_id}/result")
    async def get_task_result(task_id: str) -> Any:
        result = orchestrator.get_task_result(task_id)
        if result is not None:
            return result.to_dict()
        task = orchestrator.get_task_status(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return JSONResponse(status_code=202, content={"task_id": task_id, "status": task.status.value})

    @app.delete("/api/tasks/{task_id}")
    async def cancel_task(task_id: str) -> Dict[str, Any]:
        task = await orchestrator.cancel_task(task_id)
        return {"task_id": task.id, "status": task.status.value}

    # Agents -------------------------------------------------------------------

    @app.get("/api/agents")
    async def list_agents() -> Dict[str, Any]:
        registry = runtime.registry
        return {
            "agents": [
                {**agent.to_dict(), "current_load": registry.current_load(agent.id)}
                for agent in registry.all_agents()
            ]
        }

    @app.get("/api/agents/{agent_id}")
    async def get_agent(agent_id: str) -> Any:
        agent = runtime.registry.get_agent(agent_id)
        if agent is None:
            return JSONResponse(status_code=404, content={"detail": f"Agent {agent_id} not found"})
        return {**agent.to_dict(), "current_load": runtime.registry.current_load(agent_id)}

    @app.post("/api/agents", status_code=201)
    async def create_agent(request: AgentRequest) -> Dict[str, Any]:
        agent = runtime.add_agent(AgentCreationRequest(**request.model_dump()))
        return agent.to_dict()

    @app.get("/api/agents/{agent_id}/metrics")
    async def get_agent_metrics(agent_id: str) -> Any:
        metrics = runtime.registry.agent_metrics(agent_id)
        if metrics is None:
            return JSONResponse(status_code=404, content={"detail": f"Agent {agent_id} not found"})
        return {
            "agent_id": agent_id,
            "current_load": runtime.registry.current_load(agent_id),
            "metrics": metrics.to_dict(),
        }

    @app.get("/api/agents/{agent_id}/insights")
    async def get_agent_insights(agent_id: str) -> Any:
        insights = runtime.registry.agent_insights(agent_id)
        if insights is None:
            return JSONResponse(status_code=404, content={"detail": f"Agent {agent_id} not found"})
        return insights

    @app.get("/api/agent-templates")
    async def list_agent_templates() -> Dict[str, Any]:
        return {"templates": [template.to_dict() for template in runtime.agent_templates.list_templates()]}

    @app.post("/api/agent-templates", status_code=201)
    async def add_agent_template(request: AgentTemplateRequest) -> Dict[str, Any]:
        template = AgentTemplate.from_mapping(request.model_dump(exclude_none=True))
        return runtime.add_agent_template(template).to_dict()

    # Workflows ----------------------------------------------------------------

    @app.get("/api/workflows/templates")
    async def list_workflow_templates(category: Optional[str] = None) -> Dict[str, Any]:
        return {"templates": [template.to_dict() for template in workflows.list_templates(category)]}

    @app.get("/api/workflows/templates/{template_id}")
    async def get_workflow_template(template_id: str) -> Dict[str, Any]:
        template = workflows.get_template(template_id)
        if template is None:
            raise WorkflowNotFoundError(template_id)
        return template.to_dict()

    @app.post("/api/workflows/templates", status_code=201)
    async def add_workflow_template(request: WorkflowTemplateRequest) -> Dict[str, Any]:
        template = WorkflowTemplate.from_mapping(request.model_dump(exclude_none=True))
        workflows.register_template(template)
        return template.to_dict()

    @app.post("/api/workflows/execute", status_code=202)
    async def execute_workflow(request: WorkflowExecuteRequest) -> Dict[str, Any]:
        execution_id = await workflows.execute_workflow(request.template_id, request.inputs)
        return {"execution_id": execution_id, "status": "started"}

    @app.get("/api/workflows/executions/{execution_id}")
    async def get_workflow_status(execution_id: str) -> Any:
        status = workflows.get_workflow_status(execution_id)
        if status is None:
            return JSONResponse(
                status_code=404, content={"detail": f"Workflow execution {execution_id} not found"}
            )
        return status

    # System -------------------------------------------------------------------

    @app.get("/api/system/stats")
    async def system_stats() -> Dict[str, Any]:
        stats = orchestrator.system_stats()
        stats["providers"] = runtime.router.stats()
        stats["circuit_breakers"] = runtime.router.breaker_status()
        stats["workflows"] = {
            "templates": len(workflows.list_templates()),
            "executions": len(workflows.list_executions()),
        }
        return stats

    @app.websocket("/ws/tasks")
    async def task_events(websocket: WebSocket) -> None:
        queue = broadcaster.subscribe()
        await websocket.accept()
        try:
            while True:
                event = await queue.get()
                await websocket.send_text(json.dumps(event, default=str))
        except WebSocketDisconnect:
            logger.debug("Task event subscriber disconnected")
        finally:
            broadcaster.unsubscribe(queue)

    return app
